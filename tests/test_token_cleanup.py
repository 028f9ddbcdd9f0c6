"""Unit and integration tests for the expired refresh-token cleanup job."""

import unittest
from unittest.mock import MagicMock, patch

from sqlalchemy import select

from db_support import FakeClock, add_user, make_engine, make_session_factory, make_settings
from inventory import token_cleanup
from inventory.models import RefreshToken
from inventory.services.refresh_tokens import RefreshTokenStore
from inventory.services.token_cleanup import run_token_cleanup


class TestTokenCleanupDisabled(unittest.TestCase):
    """When TOKEN_CLEANUP_ENABLED is False, run_token_cleanup does nothing."""

    def test_returns_zero_and_does_not_sweep(self) -> None:
        settings = MagicMock()
        settings.TOKEN_CLEANUP_ENABLED = False
        session = MagicMock()
        store = MagicMock()
        self.assertEqual(run_token_cleanup(session, settings, store), 0)
        store.sweep_expired.assert_not_called()
        session.execute.assert_not_called()


class TestTokenCleanupEnabled(unittest.TestCase):
    """When enabled, the store's sweep result is returned."""

    def test_returns_deleted_count(self) -> None:
        settings = MagicMock()
        settings.TOKEN_CLEANUP_ENABLED = True
        session = MagicMock()
        store = MagicMock()
        store.sweep_expired.return_value = 3
        self.assertEqual(run_token_cleanup(session, settings, store), 3)
        store.sweep_expired.assert_called_once_with(session)

    def test_builds_store_from_settings_when_not_given(self) -> None:
        settings = make_settings()
        session = MagicMock()
        with patch("inventory.services.token_cleanup.RefreshTokenStore") as store_cls:
            store_cls.return_value.sweep_expired.return_value = 0
            self.assertEqual(run_token_cleanup(session, settings), 0)
        store_cls.assert_called_once_with(settings)


class TestTokenCleanupIntegration(unittest.TestCase):
    """Against SQLite: expired rows are removed, live rows stay."""

    def test_cleanup_against_database(self) -> None:
        engine = make_engine()
        self.addCleanup(engine.dispose)
        db = make_session_factory(engine)()
        self.addCleanup(db.close)
        clock = FakeClock()
        settings = make_settings()
        store = RefreshTokenStore(settings, clock=clock)

        alice = add_user(db, "alice")
        bob = add_user(db, "bob")
        expired = store.issue(db, alice.id)
        clock.advance(days=31)
        live = store.issue(db, bob.id)

        self.assertEqual(run_token_cleanup(db, settings, store), 1)
        tokens = db.scalars(select(RefreshToken.token)).all()
        self.assertEqual(tokens, [live])
        self.assertNotIn(expired, tokens)


class TestTokenCleanupEntrypoint(unittest.TestCase):
    """inventory.token_cleanup.main exit codes."""

    def setUp(self) -> None:
        self.session = MagicMock()
        self.engine = MagicMock()
        for target, value in (
            ("get_settings", make_settings()),
            ("build_engine", self.engine),
            ("build_session_factory", MagicMock(return_value=self.session)),
        ):
            patcher = patch.object(token_cleanup, target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_success_exits_zero_and_releases_resources(self) -> None:
        with patch.object(token_cleanup, "run_token_cleanup", return_value=2):
            self.assertEqual(token_cleanup.main(), 0)
        self.session.close.assert_called_once()
        self.engine.dispose.assert_called_once()

    def test_failure_exits_one(self) -> None:
        with patch.object(token_cleanup, "run_token_cleanup", side_effect=RuntimeError("db down")):
            with self.assertLogs("inventory.token_cleanup", level="ERROR"):
                self.assertEqual(token_cleanup.main(), 1)
        self.session.close.assert_called_once()
        self.engine.dispose.assert_called_once()


if __name__ == "__main__":
    unittest.main()
