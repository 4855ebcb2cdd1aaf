"""The login / persist / renew lifecycle of the token agent.

Pattern: Explicit Two-State Machine
------------------------------------
The agent is either ``LOGGED_OUT`` (no usable token) or ``RENEWING`` (a token
has been written to disk and is being kept alive).  ``step()`` performs exactly
one transition:

  LOGGED_OUT --login + persist------------> RENEWING
  RENEWING   --renew ok, wait for margin--> RENEWING
  RENEWING   --renew fails----------------> LOGGED_OUT
  any        --shutdown requested---------> STOPPED

Login and persistence failures are not transitions: they propagate, because
an agent that cannot log in or cannot write the token file has nothing useful
left to do.  Renewal failures are absorbed and answered with a fresh login.

The shutdown event is checked before every Vault call, and the wait between
renewals is ``Event.wait`` so a signal handler can end it early.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

from vault_user_token.auth.identity import resolve_identity
from vault_user_token.auth.session import Session
from vault_user_token.auth.vault_authenticator import RenewalError, VaultAuthenticator
from vault_user_token.config import Config
from vault_user_token.store.token_file import TokenFileStore

logger = logging.getLogger(__name__)

# Lower bound on the pause between renewals, so a zero lease cannot spin.
MIN_RENEWAL_WAIT = 1.0


class AgentState(enum.Enum):
    LOGGED_OUT = "logged_out"
    RENEWING = "renewing"
    STOPPED = "stopped"


class RenewalAgent:
    """Keeps one AppRole token alive and mirrored to the token file.

    Collaborators are injected so the agent holds no global state:

      - *authenticator* talks to Vault.
      - *store* writes the token file.
      - *resolver* produces the ``secret_id`` (called once, or before every
        re-login when ``config.reread_identity`` is set).
      - *wait* blocks for the given number of seconds and returns ``True`` if
        shutdown was requested meanwhile; defaults to ``shutdown.wait``.
    """

    def __init__(
        self,
        config: Config,
        authenticator: VaultAuthenticator,
        store: TokenFileStore,
        resolver: Callable[[Config], str] = resolve_identity,
        shutdown: threading.Event | None = None,
        wait: Callable[[float], bool] | None = None,
    ) -> None:
        self._config = config
        self._authenticator = authenticator
        self._store = store
        self._resolver = resolver
        self._shutdown = shutdown if shutdown is not None else threading.Event()
        self._wait = wait if wait is not None else self._shutdown.wait

        self._state = AgentState.LOGGED_OUT
        self._session: Session | None = None
        self._identity: str | None = None
        self._login_count = 0
        self.next_renewal_in: int | None = None

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def login_count(self) -> int:
        return self._login_count

    def stop(self) -> None:
        """Request shutdown; the current wait or step ends promptly."""
        self._shutdown.set()

    def identity(self) -> str:
        """Return the ``secret_id``, resolving it on first use."""
        if self._identity is None:
            self._identity = self._resolver(self._config)
        return self._identity

    # -- transitions ----------------------------------------------------------

    def login(self) -> Session:
        """Log in, activate the token on the client and write it to disk.

        Raises ``LoginError``, ``PersistError`` or an identity error.
        """
        if self._login_count > 0 and self._config.reread_identity:
            self._identity = None
        secret_id = self.identity()

        session = self._authenticator.login(self._config.role_id, secret_id)
        self._authenticator.set_token(session.client_token)
        path = self._store.persist(session.client_token)
        logger.info("Token written to %s (lease %ss)", path, session.lease_duration)

        self._login_count += 1
        self._session = session
        self._state = AgentState.RENEWING
        return session

    def renew(self) -> Session:
        """Renew the active token once.  Raises ``RenewalError``."""
        session = self._authenticator.renew(self._config.renew_increment, current=self._session)
        self._session = session
        return session

    def step(self) -> AgentState:
        """Perform one state transition and return the new state."""
        if self._shutdown.is_set():
            self._state = AgentState.STOPPED
            return self._state

        if self._state is AgentState.LOGGED_OUT:
            self.login()
        elif self._state is AgentState.RENEWING:
            self._renew_and_wait()
        return self._state

    def run(self) -> None:
        """Drive the state machine until shutdown is requested."""
        logger.info(
            "Starting token agent for %s (role mount %r)",
            self._authenticator.vault_addr,
            self._config.approle_mount,
        )
        while self.step() is not AgentState.STOPPED:
            pass
        logger.info("Token agent stopped")

    # -- private helpers -----------------------------------------------------

    def _renew_and_wait(self) -> None:
        try:
            session = self.renew()
        except RenewalError as exc:
            logger.error("Could not renew token, logging in again: %s", exc)
            self._session = None
            self.next_renewal_in = None
            self._state = AgentState.LOGGED_OUT
            return

        self.next_renewal_in = session.renewal_delay(self._config.renewal_margin)
        logger.debug("Next renewal in %d seconds", self.next_renewal_in)
        if self._wait(max(float(self.next_renewal_in), MIN_RENEWAL_WAIT)):
            self._state = AgentState.STOPPED
