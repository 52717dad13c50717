from __future__ import annotations

import logging
import os
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client as SupabaseClient
from supabase import create_client

from ..errors import ErrorKind, SaveError
from ..targets import DailyTargets

logger = logging.getLogger(__name__)

TARGETS_TABLE = 'user_targets'

AUTH_CODES = {'401', '403', 'PGRST301', 'PGRST302', '42501'}
VALIDATION_CODES = {'400', '23514', '23502', '22P02', '22003', 'PGRST102', 'PGRST204'}
NETWORK_MARKERS = ('network', 'econnrefused', 'fetch', 'connection')
AUTH_MARKERS = ('auth', 'unauthorized', 'jwt')
VALIDATION_MARKERS = ('check constraint',)


def classify_exception(exc: BaseException) -> SaveError:
    """Map a failure raised by the Supabase client to a :class:`SaveError`."""

    if isinstance(exc, SaveError):
        return exc

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return SaveError(ErrorKind.NETWORK)

    status = _status_of(exc)
    code = str(getattr(exc, 'code', '') or '')
    if status in (401, 403) or code in AUTH_CODES:
        return SaveError(ErrorKind.AUTH, status_code=status)
    if status == 400 or code in VALIDATION_CODES:
        return SaveError(ErrorKind.VALIDATION, status_code=status)

    text = (getattr(exc, 'message', None) or str(exc) or '').lower()
    if any(marker in text for marker in NETWORK_MARKERS):
        return SaveError(ErrorKind.NETWORK, status_code=status)
    if any(marker in text for marker in AUTH_MARKERS):
        return SaveError(ErrorKind.AUTH, status_code=status)
    if any(marker in text for marker in VALIDATION_MARKERS):
        return SaveError(ErrorKind.VALIDATION, status_code=status)
    return SaveError(ErrorKind.UNKNOWN, status_code=status)


def _status_of(exc: BaseException) -> Optional[int]:
    for attr in ('status', 'status_code'):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    code = getattr(exc, 'code', None)
    if isinstance(exc, APIError) and isinstance(code, str) and code.isdigit() and len(code) == 3:
        return int(code)
    return None


class SupabaseTargetSink:
    """Upserts daily targets into the hosted ``user_targets`` table."""

    def __init__(self, client: Optional[SupabaseClient] = None) -> None:
        self._supabase: Optional[SupabaseClient] = client if client is not None else self._init_supabase()

    @property
    def configured(self) -> bool:
        return self._supabase is not None

    def upsert(self, user_id: str, targets: DailyTargets) -> None:
        client = self._require_client()
        try:
            client.table(TARGETS_TABLE).upsert(
                targets.to_record(user_id), on_conflict='user_id'
            ).execute()
        except Exception as exc:
            error = classify_exception(exc)
            logger.warning(
                'target_sink.upsert_failed',
                exc_info=error.kind is ErrorKind.UNKNOWN,
                extra={'user_id': user_id, 'kind': error.kind.value},
            )
            raise error from exc

    def fetch(self, user_id: str) -> Optional[DailyTargets]:
        """Return the stored targets, or ``None`` for a user with no row yet."""

        client = self._require_client()
        try:
            response = (
                client.table(TARGETS_TABLE)
                .select('*')
                .eq('user_id', user_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            error = classify_exception(exc)
            logger.warning(
                'target_sink.fetch_failed',
                extra={'user_id': user_id, 'kind': error.kind.value},
            )
            raise error from exc

        rows: Any = getattr(response, 'data', None)
        if rows and isinstance(rows, list) and isinstance(rows[0], dict):
            return DailyTargets.from_record(rows[0])
        return None

    # --- Private helpers -------------------------------------------------

    def _require_client(self) -> SupabaseClient:
        if self._supabase is None:
            raise SaveError(ErrorKind.UNKNOWN, 'Remote storage is not configured. Your targets were kept on this device.')
        return self._supabase

    def _init_supabase(self) -> Optional[SupabaseClient]:
        url = self._get_env_value('SUPABASE_URL', 'SUPABASE_PROJECT_URL')
        key = self._get_env_value(
            'SUPABASE_SERVICE_ROLE_KEY',
            'SUPABASE_ANON_KEY',
            'SUPABASE_API_KEY',
        )
        if not url or not key:
            logger.info('Supabase disabled (missing env)')
            return None
        try:
            return create_client(url, key)
        except Exception as exc:
            logger.warning('Supabase init failed: %s', exc)
            return None

    @staticmethod
    def _get_env_value(*names: str) -> Optional[str]:
        for name in names:
            value = os.getenv(name)
            if value:
                return value
        return None
