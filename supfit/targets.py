"""Daily target record, validation rules and input clamping."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class FieldRule:
    label: str
    minimum: int
    maximum: int
    step: int
    unit: str = ''

    def bounds_message(self) -> str:
        suffix = f' {self.unit}' if self.unit else ''
        return f'{self.label} must be between {self.minimum} and {self.maximum}{suffix}'


VALIDATION_RULES: Dict[str, FieldRule] = {
    'steps': FieldRule('Steps', 1000, 20000, 500),
    'running_km': FieldRule('Running distance', 1, 20, 1, 'km'),
    'sports_minutes': FieldRule('Sports time', 15, 180, 15, 'minutes'),
    'workout_minutes': FieldRule('Workout time', 15, 180, 15, 'minutes'),
}

MILESTONE_MAX_LENGTH = 200
MILESTONE_YEAR_SPAN = 5

# Local JSON keys -> ``user_targets`` columns.
RECORD_COLUMNS = {
    'steps': 'steps',
    'running_km': 'running',
    'sports_minutes': 'sports',
    'workout_minutes': 'workout',
    'milestone_text': 'milestone',
    'milestone_month': 'milestone_month',
    'milestone_year': 'milestone_year',
}


def current_year() -> int:
    return datetime.now().year


@dataclass
class DailyTargets:
    """The seven user-editable daily targets."""

    steps: int = 8000
    running_km: int = 5
    sports_minutes: int = 60
    workout_minutes: int = 60
    milestone_text: str = ''
    milestone_month: Optional[int] = None
    milestone_year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls, data: Optional[Mapping[str, Any]], base: Optional['DailyTargets'] = None
    ) -> 'DailyTargets':
        """Build a record from a JSON mapping.

        Missing keys come from ``base`` when given, otherwise from the defaults.
        """

        if not isinstance(data, Mapping):
            return replace(base) if base is not None else cls()
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known and value is not None}
        # an explicit null or empty string clears a milestone date
        for name in ('milestone_month', 'milestone_year'):
            if name in data:
                values[name] = _optional_int(data[name])
        if base is not None:
            return replace(base, **values)
        return cls(**values)

    def to_record(self, user_id: str) -> Dict[str, Any]:
        record: Dict[str, Any] = {'user_id': user_id}
        for key, column in RECORD_COLUMNS.items():
            record[column] = getattr(self, key)
        return record

    @classmethod
    def from_record(cls, row: Optional[Mapping[str, Any]]) -> 'DailyTargets':
        if not isinstance(row, Mapping):
            return cls()
        data = {key: row.get(column) for key, column in RECORD_COLUMNS.items()}
        return cls.from_dict(data)


def _optional_int(value: Any) -> Any:
    """Coerce clean digit strings; leave anything else for validation to reject."""

    if value is None or value == '':
        return None
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return value


def _year_window(year: Optional[int]) -> tuple:
    base = year if year is not None else current_year()
    return base, base + MILESTONE_YEAR_SPAN


def _check_numeric(name: str, value: Any, errors: List[str]) -> None:
    rule = VALIDATION_RULES[name]
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(f'{rule.label} must be a whole number')
        return
    if value < rule.minimum or value > rule.maximum:
        errors.append(rule.bounds_message())


def _check_month(value: Any, errors: List[str]) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append('Please select a valid month (1-12)')
    elif value < 1 or value > 12:
        errors.append('Month must be between 1 and 12')


def _check_year(value: Any, errors: List[str], year: Optional[int]) -> None:
    first, last = _year_window(year)
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append('Please enter a valid year')
    elif value < first or value > last:
        errors.append(f'Year must be between {first} and {last}')


def validate_targets(values: DailyTargets, year: Optional[int] = None) -> List[str]:
    """Return every constraint violation in ``values``.

    Milestone month and year are optional here and only checked when set.
    An empty list means the record can be saved.
    """

    errors: List[str] = []
    for name in VALIDATION_RULES:
        _check_numeric(name, getattr(values, name), errors)

    text = values.milestone_text
    if not isinstance(text, str):
        errors.append('Milestone must be text')
    elif len(text) > MILESTONE_MAX_LENGTH:
        errors.append(f'Milestone must be under {MILESTONE_MAX_LENGTH} characters')

    if values.milestone_month is not None:
        _check_month(values.milestone_month, errors)
    if values.milestone_year is not None:
        _check_year(values.milestone_year, errors, year)
    return errors


def validate_milestone(values: DailyTargets, year: Optional[int] = None) -> List[str]:
    """Validate the milestone block where text, month and year are all required."""

    errors: List[str] = []
    text = values.milestone_text if isinstance(values.milestone_text, str) else ''
    if not text.strip():
        errors.append('Milestone description is required')
    elif len(text) > MILESTONE_MAX_LENGTH:
        errors.append(f'Milestone must be under {MILESTONE_MAX_LENGTH} characters')

    if values.milestone_month is None:
        errors.append('Please select a valid month (1-12)')
    else:
        _check_month(values.milestone_month, errors)

    if values.milestone_year is None:
        errors.append('Please enter a valid year')
    else:
        _check_year(values.milestone_year, errors, year)
    return errors


def clamp_value(field: str, value: int) -> int:
    rule = VALIDATION_RULES[field]
    return max(rule.minimum, min(rule.maximum, value))


def step_value(field: str, value: int, direction: int) -> int:
    """Move ``value`` one step up (``direction > 0``) or down, staying in range."""

    rule = VALIDATION_RULES[field]
    delta = rule.step if direction > 0 else -rule.step
    return clamp_value(field, value + delta)


def parse_input(field: str, raw: Any) -> int:
    """Turn free-form numeric input into an in-range value.

    Non-digit characters are dropped; nothing left falls back to the minimum.
    """

    rule = VALIDATION_RULES[field]
    digits = re.sub(r'\D', '', str(raw if raw is not None else ''))
    if not digits:
        return rule.minimum
    return clamp_value(field, int(digits))
