"""Shared-credential dashboard login backed by a persisted flag."""

from __future__ import annotations

import hmac
import logging

from ..types import StateStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "isAuthenticated"


class DashboardAuth:
    """One static username/password pair, no expiry and no token.

    Credentials come from configuration. With either one unset, every login
    attempt is refused.
    """

    def __init__(self, username: str, password: str, store: StateStore) -> None:
        self._username = username
        self._password = password
        self._store = store

    @property
    def configured(self) -> bool:
        return bool(self._username and self._password)

    def login(self, username: str, password: str) -> bool:
        if not self.configured:
            logger.warning("Dashboard login attempted but no credentials are configured")
            return False
        user_ok = hmac.compare_digest(username.strip().encode(), self._username.encode())
        pass_ok = hmac.compare_digest(password.strip().encode(), self._password.encode())
        if user_ok and pass_ok:
            self._store.set(STORAGE_KEY, True)
            return True
        logger.info("Rejected dashboard login for %r", username.strip())
        return False

    def logout(self) -> None:
        self._store.remove(STORAGE_KEY)

    def is_authenticated(self) -> bool:
        return self._store.get(STORAGE_KEY) is True
