"""Shared fixtures for tests."""

from __future__ import annotations

import pathlib
from unittest.mock import MagicMock

import pytest

from vault_user_token.auth.session import Session
from vault_user_token.auth.vault_authenticator import RenewalError
from vault_user_token.config import Config


@pytest.fixture
def config(tmp_path: pathlib.Path) -> Config:
    """Config whose token and override files live under *tmp_path*."""
    return Config(
        vault_addr="http://127.0.0.1:8200",
        role_id="role-1234",
        use_full_hostname=True,
        token_path=tmp_path / ".vault-token",
        identity_path=tmp_path / "secret-id",
    )


@pytest.fixture
def mock_hvac_client() -> MagicMock:
    client = MagicMock()
    client.token = ""
    return client


def make_session(token: str = "s.fake-token", lease: int = 3600) -> Session:
    return Session(
        client_token=token,
        lease_duration=lease,
    )


class FakeAuthenticator:
    """Stand-in for ``VaultAuthenticator`` that records every call.

    *renewals* is consumed in order; an exception instance is raised instead
    of returned.  When exhausted, renewals keep returning a one-hour lease.
    """

    vault_addr = "http://127.0.0.1:8200"

    def __init__(self, renewals: list[Session | Exception] | None = None) -> None:
        self.renewals = list(renewals or [])
        self.logins: list[tuple[str, str]] = []
        self.tokens: list[str] = []
        self.renew_calls: list[int] = []
        self.login_error: Exception | None = None

    def login(self, role_id: str, secret_id: str) -> Session:
        self.logins.append((role_id, secret_id))
        if self.login_error is not None:
            raise self.login_error
        return make_session(token=f"s.token-{len(self.logins)}")

    def set_token(self, token: str) -> None:
        self.tokens.append(token)

    def renew(self, increment: int, current: Session | None = None) -> Session:
        self.renew_calls.append(increment)
        if not self.renewals:
            return make_session(token=current.client_token if current else "")
        result = self.renewals.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_authenticator() -> FakeAuthenticator:
    return FakeAuthenticator(renewals=[RenewalError("renewing token: permission denied")])
