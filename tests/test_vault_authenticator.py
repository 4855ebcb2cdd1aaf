"""Tests for AppRole login and token renewal through hvac."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import hvac.exceptions
import pytest
import requests

from vault_user_token.auth.vault_authenticator import (
    LoginError,
    RenewalError,
    VaultAuthenticationError,
    VaultAuthenticator,
)

from conftest import make_session

_LOGIN_RESPONSE = {
    "auth": {
        "client_token": "s.login-token",
        "lease_duration": 3600,
        "renewable": True,
        "policies": ["default"],
    }
}


def _authenticator(client: MagicMock) -> VaultAuthenticator:
    return VaultAuthenticator(vault_addr="http://127.0.0.1:8200", client=client)


class TestLogin:
    def test_successful_login_returns_session(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.approle.login.return_value = _LOGIN_RESPONSE

        session = _authenticator(mock_hvac_client).login("role-1234", "node1")

        assert session.client_token == "s.login-token"
        assert session.lease_duration == 3600

    def test_login_sends_role_and_secret(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.approle.login.return_value = _LOGIN_RESPONSE
        authenticator = VaultAuthenticator(
            vault_addr="http://127.0.0.1:8200", mount_point="hosts", client=mock_hvac_client
        )

        authenticator.login("role-1234", "node1")

        mock_hvac_client.auth.approle.login.assert_called_once_with(
            role_id="role-1234",
            secret_id="node1",
            use_token=False,
            mount_point="hosts",
        )

    def test_login_does_not_activate_token(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.approle.login.return_value = _LOGIN_RESPONSE
        _authenticator(mock_hvac_client).login("role-1234", "node1")
        assert mock_hvac_client.token == ""

    @pytest.mark.parametrize(
        ("side_effect", "return_value"),
        [
            (hvac.exceptions.InvalidRequest("invalid secret id"), None),
            (requests.exceptions.ConnectionError("connection refused"), None),
            (None, {"auth": None}),
            (None, {"auth": {}}),
            (None, {"data": {}}),
            (None, None),
        ],
        ids=["vault-error", "transport-error", "null-auth", "empty-auth", "no-auth-key", "no-body"],
    )
    def test_login_failures(
        self,
        mock_hvac_client: MagicMock,
        side_effect: Exception | None,
        return_value: object,
    ) -> None:
        mock_hvac_client.auth.approle.login.side_effect = side_effect
        mock_hvac_client.auth.approle.login.return_value = return_value

        with pytest.raises(LoginError, match="logging in using approle"):
            _authenticator(mock_hvac_client).login("role-1234", "node1")

    def test_malformed_lease_is_a_login_failure(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.approle.login.return_value = {
            "auth": {"client_token": "s.x", "lease_duration": "forever"}
        }
        with pytest.raises(LoginError, match="malformed"):
            _authenticator(mock_hvac_client).login("role-1234", "node1")


class TestSetToken:
    def test_set_token_updates_client(self, mock_hvac_client: MagicMock) -> None:
        _authenticator(mock_hvac_client).set_token("s.active")
        assert mock_hvac_client.token == "s.active"


class TestRenew:
    def test_renew_requests_increment(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.token.renew_self.return_value = {
            "auth": {"client_token": "s.login-token", "lease_duration": 900}
        }

        session = _authenticator(mock_hvac_client).renew(900)

        mock_hvac_client.auth.token.renew_self.assert_called_once_with(increment=900)
        assert session.lease_duration == 900

    def test_renew_keeps_token_when_omitted(self, mock_hvac_client: MagicMock) -> None:
        mock_hvac_client.auth.token.renew_self.return_value = {"auth": {"lease_duration": 900}}
        session = _authenticator(mock_hvac_client).renew(900, current=make_session(token="s.kept"))
        assert session.client_token == "s.kept"

    @pytest.mark.parametrize(
        ("side_effect", "return_value"),
        [
            (hvac.exceptions.Forbidden("permission denied"), None),
            (requests.exceptions.Timeout("timed out"), None),
            (None, {"auth": None}),
            (None, {"auth": {"client_token": "s.x"}}),
            (None, {"auth": {"client_token": "s.x", "lease_duration": -5}}),
        ],
        ids=["vault-error", "transport-error", "no-auth", "no-lease", "negative-lease"],
    )
    def test_renew_failures(
        self,
        mock_hvac_client: MagicMock,
        side_effect: Exception | None,
        return_value: object,
    ) -> None:
        mock_hvac_client.auth.token.renew_self.side_effect = side_effect
        mock_hvac_client.auth.token.renew_self.return_value = return_value

        with pytest.raises(RenewalError, match="renewing token"):
            _authenticator(mock_hvac_client).renew(900)


class TestConstruction:
    @patch("vault_user_token.auth.vault_authenticator.hvac.Client")
    def test_builds_hvac_client_from_address(self, mock_client_cls: MagicMock) -> None:
        VaultAuthenticator(vault_addr="https://vault:8200")
        mock_client_cls.assert_called_once_with(url="https://vault:8200", token="")

    @patch("vault_user_token.auth.vault_authenticator.hvac.Client", side_effect=ValueError("bad url"))
    def test_construction_failure(self, _mock_client_cls: MagicMock) -> None:
        with pytest.raises(VaultAuthenticationError, match="Unable to create new vault client"):
            VaultAuthenticator(vault_addr="https://vault:8200")
