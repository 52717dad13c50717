from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from ..errors import ErrorKind, SaveError
from ..targets import DailyTargets, current_year, validate_milestone, validate_targets
from .local_store import APP_STATE_KEY, PENDING_SAVE_KEY, TARGETS_CACHE_KEY, LocalStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0
APP_STATES = ('active', 'inactive', 'background')


class SaveOutcome(str, Enum):
    SAVED = 'saved'
    IGNORED = 'ignored'


class TargetSaveFlow:
    """Validate, upsert and cache a user's daily targets.

    A failed upsert leaves the last good cache alone and parks the attempted
    values in the pending slot so they can be replayed later.
    """

    def __init__(
        self,
        store: LocalStore,
        sink: Any,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        year: Callable[[], int] = current_year,
    ) -> None:
        self._store = store
        self._sink = sink
        self._debounce = debounce_seconds
        self._clock = clock
        self._year = year
        self._last_save: Dict[Optional[str], float] = {}

    def save_targets(self, user_id: Optional[str], values: DailyTargets) -> SaveOutcome:
        now = self._clock()
        self._forget_expired(now)
        if user_id in self._last_save:
            logger.info('targets.save.debounced', extra={'user_id': user_id})
            return SaveOutcome.IGNORED
        self._last_save[user_id] = now

        errors = validate_targets(values, self._year())
        if errors:
            logger.info('targets.save.validation_failed', extra={'user_id': user_id})
            raise SaveError.validation(errors)

        try:
            if not user_id:
                raise SaveError(ErrorKind.AUTH, 'User not authenticated. Please log in again.')
            self._sink.upsert(user_id, values)
        except SaveError as error:
            if user_id:
                self._store.set(user_id, PENDING_SAVE_KEY, values.to_dict())
            logger.warning(
                'targets.save.failed',
                extra={'user_id': user_id, 'kind': error.kind.value},
            )
            raise

        self._store.set(user_id, TARGETS_CACHE_KEY, values.to_dict())
        self._store.delete(user_id, PENDING_SAVE_KEY)
        logger.info('targets.save.success', extra={'user_id': user_id})
        return SaveOutcome.SAVED

    def save_milestone(self, user_id: Optional[str], values: DailyTargets) -> SaveOutcome:
        errors = validate_milestone(values, self._year())
        if errors:
            raise SaveError.validation(errors)
        return self.save_targets(user_id, values)

    def load_targets(self, user_id: str) -> Tuple[DailyTargets, str]:
        """Return the user's targets and where they came from.

        The remote row wins; a failed fetch falls back to the local cache and
        then to defaults. A user without a row simply gets defaults.
        """

        try:
            remote = self._sink.fetch(user_id)
        except SaveError as error:
            logger.warning(
                'targets.load.remote_failed',
                extra={'user_id': user_id, 'kind': error.kind.value},
            )
            cached = self._store.get(user_id, TARGETS_CACHE_KEY)
            if isinstance(cached, dict):
                return DailyTargets.from_dict(cached), 'cache'
            return DailyTargets(), 'default'

        if remote is None:
            return DailyTargets(), 'default'
        return remote, 'remote'

    def pending_targets(self, user_id: str) -> Optional[DailyTargets]:
        pending = self._store.get(user_id, PENDING_SAVE_KEY)
        if isinstance(pending, dict):
            return DailyTargets.from_dict(pending)
        return None

    def _forget_expired(self, now: float) -> None:
        expired = [key for key, last in self._last_save.items() if now - last >= self._debounce]
        for key in expired:
            del self._last_save[key]


class ResyncState(str, Enum):
    IDLE = 'idle'
    RETRYING = 'retrying'


@dataclass
class ResyncResult:
    retried: bool = False
    outcome: Optional[SaveOutcome] = None
    error: Optional[SaveError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'retried': self.retried,
            'outcome': self.outcome.value if self.outcome else None,
            'error': self.error.to_dict() if self.error else None,
        }


class ResyncMonitor:
    """Replay a pending save when the app returns to the foreground."""

    def __init__(self, flow: TargetSaveFlow, store: LocalStore) -> None:
        self._flow = flow
        self._store = store
        self._states: Dict[str, ResyncState] = {}

    def state(self, user_id: str) -> ResyncState:
        return self._states.get(user_id, ResyncState.IDLE)

    def handle_app_state_change(self, user_id: str, next_state: str) -> ResyncResult:
        if next_state not in APP_STATES:
            raise ValueError(f'Unknown app state: {next_state!r}')

        previous = self._store.get(user_id, APP_STATE_KEY) or 'active'
        self._store.set(user_id, APP_STATE_KEY, next_state)

        if previous not in ('inactive', 'background') or next_state != 'active':
            return ResyncResult()
        if self.state(user_id) is ResyncState.RETRYING:
            return ResyncResult()

        pending = self._flow.pending_targets(user_id)
        if pending is None:
            return ResyncResult()

        self._states[user_id] = ResyncState.RETRYING
        logger.info('targets.resync.retry', extra={'user_id': user_id})
        try:
            outcome = self._flow.save_targets(user_id, pending)
        except SaveError as error:
            return ResyncResult(retried=True, error=error)
        finally:
            self._states[user_id] = ResyncState.IDLE
        # a replay swallowed by the debounce window did not reach the sink
        return ResyncResult(retried=outcome is not SaveOutcome.IGNORED, outcome=outcome)
