"""Typed errors raised by the targets save flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    NETWORK = 'network'
    AUTH = 'auth'
    VALIDATION = 'validation'
    UNKNOWN = 'unknown'


DEFAULT_MESSAGES = {
    ErrorKind.NETWORK: 'Connection error. Please check your internet and try again.',
    ErrorKind.AUTH: 'Your session expired. Please log in again.',
    ErrorKind.VALIDATION: 'Invalid target values. Please check your input.',
    ErrorKind.UNKNOWN: 'Failed to save targets. Please try again.',
}

HTTP_STATUS = {
    ErrorKind.NETWORK: 503,
    ErrorKind.AUTH: 401,
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNKNOWN: 500,
}


@dataclass
class SaveError(Exception):
    """Raised when a targets save cannot complete.

    ``kind`` is decided where the failure happens (validation step or the
    remote call), so callers never have to inspect ``message``.
    """

    kind: ErrorKind
    message: str = ''
    status_code: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = DEFAULT_MESSAGES[self.kind]

    def __str__(self) -> str:  # pragma: no cover - dataclass convenience
        return self.message

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.NETWORK, ErrorKind.UNKNOWN)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    @classmethod
    def validation(cls, errors: List[str]) -> 'SaveError':
        return cls(ErrorKind.VALIDATION, '\n'.join(errors), errors=list(errors))

    def alert(self) -> Dict[str, Any]:
        """Describe the modal the client should show for this failure."""

        if self.kind is ErrorKind.AUTH:
            return {'title': 'Session Expired', 'message': self.message, 'actions': ['log_in']}
        if self.retryable:
            return {
                'title': 'Unable to Save',
                'message': self.message,
                'actions': ['retry', 'save_locally'],
            }
        return {
            'title': 'Invalid Input',
            'message': self.message,
            'errors': list(self.errors),
            'actions': [],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.kind.value,
            'message': self.message,
            'retryable': self.retryable,
            'alert': self.alert(),
        }
