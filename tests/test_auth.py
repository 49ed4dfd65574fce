"""Tests for DashboardAuth."""

from __future__ import annotations

from opsdash.core.auth import STORAGE_KEY, DashboardAuth


class TestDashboardAuth:
    def test_valid_login_sets_flag(self, state_store):
        auth = DashboardAuth("ops", "s3cret", state_store)
        assert auth.login("ops", "s3cret")
        assert auth.is_authenticated()
        assert state_store.get(STORAGE_KEY) is True

    def test_inputs_are_trimmed(self, state_store):
        auth = DashboardAuth("ops", "s3cret", state_store)
        assert auth.login("  ops ", "s3cret\n")

    def test_wrong_password(self, state_store):
        auth = DashboardAuth("ops", "s3cret", state_store)
        assert not auth.login("ops", "guess")
        assert not auth.is_authenticated()

    def test_unconfigured_refuses_everything(self, state_store):
        auth = DashboardAuth("", "", state_store)
        assert not auth.configured
        assert not auth.login("", "")
        assert not auth.is_authenticated()

    def test_logout_clears_flag(self, state_store):
        auth = DashboardAuth("ops", "s3cret", state_store)
        auth.login("ops", "s3cret")
        auth.logout()
        assert not auth.is_authenticated()
        assert state_store.get(STORAGE_KEY) is None

    def test_flag_survives_new_instance(self, state_store):
        DashboardAuth("ops", "s3cret", state_store).login("ops", "s3cret")
        assert DashboardAuth("ops", "s3cret", state_store).is_authenticated()

    def test_truthy_non_bool_flag_not_trusted(self, state_store):
        state_store.set(STORAGE_KEY, "true")
        assert not DashboardAuth("ops", "s3cret", state_store).is_authenticated()
