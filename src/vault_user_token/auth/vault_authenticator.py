"""AppRole authentication and token renewal against HashiCorp Vault.

Pattern: Thin Backend Wrapper
------------------------------
All HTTP traffic goes through ``hvac``.  This module only decides what counts
as success: a login is good when Vault answers with an ``auth`` block, a
renewal is good when it carries a usable ``lease_duration``.  Everything else,
including an HTTP 200 with an empty ``auth``, becomes one of the exceptions
below so the renewal agent never has to inspect raw responses.

The wrapped ``hvac.Client`` keeps one piece of mutable state, its active
token.  It is set by ``set_token`` after each login and read by every
subsequent renewal.
"""

from __future__ import annotations

import logging
from typing import Any

import hvac
import hvac.exceptions
import requests

from vault_user_token.auth.session import Session

logger = logging.getLogger(__name__)

# Transport and Vault-side failures are treated alike.
_BACKEND_ERRORS = (hvac.exceptions.VaultError, requests.exceptions.RequestException)


class VaultAuthenticationError(Exception):
    """Raised when the Vault client cannot be built or used."""


class LoginError(VaultAuthenticationError):
    """Raised when the AppRole login fails or returns no auth data."""


class RenewalError(VaultAuthenticationError):
    """Raised when renewing the current token fails."""


class VaultAuthenticator:
    """Logs in with AppRole credentials and renews the resulting token."""

    def __init__(
        self,
        vault_addr: str,
        mount_point: str = "approle",
        client: hvac.Client | None = None,
    ) -> None:
        self._vault_addr = vault_addr
        self._mount_point = mount_point
        if client is None:
            try:
                client = hvac.Client(url=vault_addr, token="")
            except (TypeError, ValueError) as exc:
                raise VaultAuthenticationError(
                    f"Unable to create new vault client for {vault_addr}: {exc}"
                ) from exc
        self._client = client

    @property
    def vault_addr(self) -> str:
        return self._vault_addr

    def login(self, role_id: str, secret_id: str) -> Session:
        """Log in via AppRole and return the new ``Session``.

        Does not change the client's active token; see ``set_token``.
        Raises ``LoginError`` on failure.
        """
        try:
            response = self._client.auth.approle.login(
                role_id=role_id,
                secret_id=secret_id,
                use_token=False,
                mount_point=self._mount_point,
            )
        except _BACKEND_ERRORS as exc:
            raise LoginError(f"logging in using approle: {exc}") from exc

        auth = _auth_block(response)
        if auth is None or not auth.get("client_token"):
            raise LoginError("logging in using approle: response contained no auth data")

        try:
            session = Session.from_auth(auth)
        except (KeyError, TypeError, ValueError) as exc:
            raise LoginError(f"logging in using approle: malformed auth data: {exc}") from exc

        logger.info(
            "Logged in to %s via approle mount %r, lease=%ss",
            self._vault_addr,
            self._mount_point,
            session.lease_duration,
        )
        return session

    def set_token(self, token: str) -> None:
        """Make *token* the credential for subsequent calls."""
        self._client.token = token

    def renew(self, increment: int, current: Session | None = None) -> Session:
        """Renew the active token for *increment* seconds.

        Raises ``RenewalError`` on a transport error, a missing ``auth`` block
        or an unusable lease.
        """
        try:
            response = self._client.auth.token.renew_self(increment=increment)
        except _BACKEND_ERRORS as exc:
            raise RenewalError(f"renewing token: {exc}") from exc

        auth = _auth_block(response)
        if auth is None:
            raise RenewalError("renewing token: response contained no auth data")

        previous_token = current.client_token if current is not None else self._client.token
        try:
            session = Session.from_auth(auth, client_token=previous_token)
        except (KeyError, TypeError, ValueError) as exc:
            raise RenewalError(f"renewing token: malformed lease: {exc}") from exc

        if session.lease_duration < 0:
            raise RenewalError(f"renewing token: negative lease {session.lease_duration}")

        logger.debug("Token renewed for another %d seconds.", session.lease_duration)
        return session


def _auth_block(response: Any) -> dict[str, Any] | None:
    if not isinstance(response, dict):
        return None
    auth = response.get("auth")
    if not isinstance(auth, dict) or not auth:
        return None
    return auth
