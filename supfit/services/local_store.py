from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import redis
from upstash_redis import Redis as UpstashRedis

logger = logging.getLogger(__name__)

TARGETS_CACHE_KEY = 'user_targets_cache'
PENDING_SAVE_KEY = 'pending_targets_save'
APP_STATE_KEY = 'app_state'


class LocalStore:
    """Per-user JSON key/value store backed by Redis or a data directory.

    Stands in for the device storage of the mobile client: values are
    read fresh on every call and written last-write-wins.
    """

    def __init__(self, data_dir: Optional[str] = None) -> None:
        self._redis: Optional[Any] = self._init_redis()

        path = Path(data_dir or os.getenv('STORAGE_DATA_DIR', '/tmp/supfit-data')).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        self._data_dir = path.resolve()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def get(self, user_id: str, key: str) -> Any:
        return self._read_json(self._path(user_id, key))

    def set(self, user_id: str, key: str, value: Any) -> None:
        self._write_json(self._path(user_id, key), value)

    def delete(self, user_id: str, key: str) -> None:
        path = self._path(user_id, key)
        if self._redis is not None:
            try:
                self._redis.delete(self._redis_key(path))
            except Exception:
                logger.warning('local_store.redis_delete_failed', exc_info=True)
        # a write made during a Redis outage lives in the file
        path.unlink(missing_ok=True)

    # --- Private helpers -------------------------------------------------

    def _init_redis(self) -> Optional[Any]:
        redis_url = os.getenv('UPSTASH_REDIS_URL')
        if redis_url:
            try:
                return redis.from_url(redis_url, decode_responses=True)
            except Exception:  # pragma: no cover - network dependent
                logger.warning('local_store.redis_init_failed', exc_info=True)

        rest_url = os.getenv('UPSTASH_REDIS_REST_URL')
        rest_token = os.getenv('UPSTASH_REDIS_REST_TOKEN')
        if rest_url and rest_token:
            try:
                return UpstashRedis(url=rest_url, token=rest_token)
            except Exception:  # pragma: no cover - network dependent
                logger.warning('local_store.upstash_init_failed', exc_info=True)
        return None

    def _write_json(self, path: Path, data: Any) -> None:
        if self._redis is not None:
            try:
                self._redis.set(self._redis_key(path), json.dumps(data))
                return
            except Exception:
                logger.warning('local_store.redis_write_failed', exc_info=True)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))

    def _read_json(self, path: Path) -> Any:
        if self._redis is not None:
            try:
                raw = self._redis.get(self._redis_key(path))
            except Exception:
                logger.warning('local_store.redis_read_failed', exc_info=True)
            else:
                if raw is not None:
                    if isinstance(raw, bytes):
                        raw = raw.decode('utf-8')
                    try:
                        return json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning('Redis value was not valid JSON for %s', path.name)
                # a Redis miss still checks the data directory

        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError:
            logger.warning('Stored value was not valid JSON for %s', path.name)
            return None

    def _redis_key(self, path: Path) -> str:
        return f'supfit:{path.name}'

    def _path(self, user_id: str, key: str) -> Path:
        safe_user = str(user_id).replace('/', '_')
        return self._data_dir / f'{safe_user}_{key}.json'
