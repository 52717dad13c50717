from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, Response, current_app, g, jsonify, request, session

from .errors import ErrorKind, SaveError
from .services.target_sync import SaveOutcome
from .targets import VALIDATION_RULES, DailyTargets, clamp_value, parse_input, step_value
from .utils.auth import AuthError, user_id_from_header

main_bp = Blueprint('main', __name__)

TARGET_FIELDS = tuple(DailyTargets.__dataclass_fields__)

logger = logging.getLogger(__name__)


def _error_response(error: SaveError) -> Tuple[Response, int]:
    body = {'status': 'error'}
    body.update(error.to_dict())
    return jsonify(body), error.http_status


def _current_user_id() -> Optional[str]:
    """Resolve the caller from the Flask session or a Supabase bearer token."""

    user: Optional[Dict[str, Any]] = session.get('user')
    if isinstance(user, dict) and user.get('id'):
        return str(user['id'])

    header = request.headers.get('Authorization')
    if not header:
        return None
    return user_id_from_header(header, current_app.config.get('SUPABASE_JWT_SECRET', ''))


def api_login_required(view):
    """Decorator answering with an auth alert when the caller is unknown."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        try:
            user_id = _current_user_id()
        except AuthError as exc:
            logger.info('auth.token_rejected', extra={'error': exc.message})
            error = SaveError(ErrorKind.AUTH, exc.message)
            response, _ = _error_response(error)
            return response, exc.status_code
        if not user_id:
            return _error_response(SaveError(ErrorKind.AUTH, 'User not authenticated. Please log in again.'))
        g.user_id = user_id
        return view(*args, **kwargs)

    return wrapped


def _targets_from_request(user_id: str) -> DailyTargets:
    """Read the submitted targets, filling omitted fields from the user's current ones."""

    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and isinstance(payload.get('targets'), dict):
        payload = payload['targets']
    if not isinstance(payload, dict):
        raise SaveError.validation(['Request body must be a JSON object of target values'])

    if all(name in payload for name in TARGET_FIELDS):
        return DailyTargets.from_dict(payload)
    current, _ = current_app.target_flow.load_targets(user_id)
    return DailyTargets.from_dict(payload, base=current)


def _run_save(save) -> Tuple[Response, int]:
    user_id = g.user_id
    try:
        values = _targets_from_request(user_id)
        outcome = save(user_id, values)
    except SaveError as error:
        return _error_response(error)
    except Exception:
        logger.exception('targets.save.error', extra={'user_id': user_id})
        return _error_response(SaveError(ErrorKind.UNKNOWN))

    status_code = 200 if outcome is SaveOutcome.SAVED else 202
    return jsonify({'status': outcome.value, 'targets': values.to_dict()}), status_code


@main_bp.route('/healthz')
def healthz() -> Response:
    return jsonify({'status': 'ok'})


@main_bp.route('/api/targets', methods=['GET'])
@api_login_required
def get_targets() -> Response:
    flow = current_app.target_flow
    targets, source = flow.load_targets(g.user_id)
    pending = flow.pending_targets(g.user_id)
    logger.info('targets.load', extra={'user_id': g.user_id, 'source': source})
    return jsonify(
        {
            'targets': targets.to_dict(),
            'source': source,
            'pending': pending.to_dict() if pending else None,
        }
    )


@main_bp.route('/api/targets', methods=['POST'])
@api_login_required
def save_targets() -> Tuple[Response, int]:
    return _run_save(current_app.target_flow.save_targets)


@main_bp.route('/api/targets/milestone', methods=['POST'])
@api_login_required
def save_milestone() -> Tuple[Response, int]:
    return _run_save(current_app.target_flow.save_milestone)


@main_bp.route('/api/targets/adjust', methods=['POST'])
def adjust_target() -> Tuple[Response, int]:
    """Apply a stepper press or typed value to one numeric target."""

    payload = request.get_json(silent=True) or {}
    field = payload.get('field')
    if field not in VALIDATION_RULES:
        return jsonify({'status': 'error', 'message': f'Unknown target field: {field!r}'}), 400

    if 'raw' in payload:
        value = parse_input(field, payload.get('raw'))
    else:
        try:
            current = int(payload.get('value', VALIDATION_RULES[field].minimum))
            direction = int(payload.get('direction', 0))
        except (TypeError, ValueError):
            return jsonify({'status': 'error', 'message': 'value and direction must be integers'}), 400
        value = step_value(field, current, direction) if direction else clamp_value(field, current)
    return jsonify({'field': field, 'value': value}), 200


@main_bp.route('/api/app-state', methods=['POST'])
@api_login_required
def app_state_changed() -> Tuple[Response, int]:
    payload = request.get_json(silent=True) or {}
    next_state = str(payload.get('state', '')).lower()
    monitor = current_app.resync_monitor
    try:
        result = monitor.handle_app_state_change(g.user_id, next_state)
    except ValueError as exc:
        return jsonify({'status': 'error', 'message': str(exc)}), 400

    body = {'state': monitor.state(g.user_id).value}
    body.update(result.to_dict())
    return jsonify(body), 200
