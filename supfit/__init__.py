"""Flask application factory."""

import os
import secrets
from typing import Any, Optional

from dotenv import load_dotenv
from flask import Flask

from .services.local_store import LocalStore
from .services.target_sink import SupabaseTargetSink
from .services.target_sync import DEFAULT_DEBOUNCE_SECONDS, ResyncMonitor, TargetSaveFlow


def _resolve_secret_key() -> str:
    """Return a secret key for Flask sessions.

    ``FLASK_SECRET_KEY`` (or the legacy ``SECRET_KEY``) is expected in
    production; without one a temporary key is generated so the app can boot.
    """

    for name in ("FLASK_SECRET_KEY", "SECRET_KEY"):
        value = os.environ.get(name)
        if value:
            return value
    return secrets.token_hex(32)


def _debounce_seconds() -> float:
    raw = os.environ.get("TARGETS_SAVE_DEBOUNCE_MS")
    if not raw:
        return DEFAULT_DEBOUNCE_SECONDS
    try:
        return max(0, int(raw)) / 1000.0
    except ValueError:
        return DEFAULT_DEBOUNCE_SECONDS


def create_app(sink: Optional[Any] = None, store: Optional[LocalStore] = None) -> Flask:
    """Configure and return the Flask application.

    ``sink`` and ``store`` replace the Supabase sink and the local store,
    which otherwise discover their settings from the environment.
    """

    load_dotenv()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = _resolve_secret_key()
    app.config["SUPABASE_JWT_SECRET"] = os.environ.get("SUPABASE_JWT_SECRET", "")
    app.config["TARGETS_SAVE_DEBOUNCE_SECONDS"] = _debounce_seconds()

    app.local_store = store if store is not None else LocalStore()
    app.target_sink = sink if sink is not None else SupabaseTargetSink()
    app.target_flow = TargetSaveFlow(
        app.local_store,
        app.target_sink,
        debounce_seconds=app.config["TARGETS_SAVE_DEBOUNCE_SECONDS"],
    )
    app.resync_monitor = ResyncMonitor(app.target_flow, app.local_store)

    from .routes import main_bp

    app.register_blueprint(main_bp)

    return app
