from __future__ import annotations

import os
from tempfile import TemporaryDirectory
from unittest import TestCase
from unittest.mock import patch

from supfit import create_app
from supfit.services.target_sink import SupabaseTargetSink


class AppFactoryTests(TestCase):
    def setUp(self) -> None:
        self.tmpdir = TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def _create(self, **environ: str):
        base = {
            "STORAGE_DATA_DIR": self.tmpdir.name,
            "SUPABASE_URL": "",
            "SUPABASE_PROJECT_URL": "",
            "SUPABASE_SERVICE_ROLE_KEY": "",
            "SUPABASE_ANON_KEY": "",
            "SUPABASE_API_KEY": "",
            "UPSTASH_REDIS_URL": "",
            "UPSTASH_REDIS_REST_URL": "",
            "UPSTASH_REDIS_REST_TOKEN": "",
        }
        base.update(environ)
        with patch.dict(os.environ, base, clear=False):
            return create_app()

    def test_defaults_without_supabase(self) -> None:
        app = self._create(TARGETS_SAVE_DEBOUNCE_MS="")

        self.assertIsInstance(app.target_sink, SupabaseTargetSink)
        self.assertFalse(app.target_sink.configured)
        self.assertEqual(1.0, app.config["TARGETS_SAVE_DEBOUNCE_SECONDS"])
        self.assertTrue(app.config["SECRET_KEY"])

    def test_debounce_window_from_environment(self) -> None:
        app = self._create(TARGETS_SAVE_DEBOUNCE_MS="2500")
        self.assertEqual(2.5, app.config["TARGETS_SAVE_DEBOUNCE_SECONDS"])

    def test_invalid_debounce_falls_back_to_default(self) -> None:
        app = self._create(TARGETS_SAVE_DEBOUNCE_MS="soon")
        self.assertEqual(1.0, app.config["TARGETS_SAVE_DEBOUNCE_SECONDS"])

    def test_secret_key_from_environment(self) -> None:
        app = self._create(FLASK_SECRET_KEY="configured-secret")
        self.assertEqual("configured-secret", app.config["SECRET_KEY"])

    def test_supabase_client_created_when_configured(self) -> None:
        fake_client = object()
        with patch("supfit.services.target_sink.create_client", return_value=fake_client) as factory:
            app = self._create(SUPABASE_URL="https://example.supabase.co", SUPABASE_ANON_KEY="anon")

        factory.assert_called_once_with("https://example.supabase.co", "anon")
        self.assertTrue(app.target_sink.configured)
