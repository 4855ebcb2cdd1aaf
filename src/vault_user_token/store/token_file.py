"""Persistence of the Vault token for local consumers.

The file holds the bare token, exactly as the Vault CLI expects to find it in
``~/.vault-token``, and is readable by its owner only.
"""

from __future__ import annotations

import logging
import os
import pathlib

logger = logging.getLogger(__name__)

TOKEN_FILE_MODE = 0o600


class PersistError(Exception):
    """Raised when the token file cannot be written."""


class TokenFileStore:
    """Writes the current client token to a fixed path."""

    def __init__(self, path: str | pathlib.Path) -> None:
        self._path = pathlib.Path(path)

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def persist(self, token: str) -> pathlib.Path:
        """Replace the file contents with *token*; returns the resolved path."""
        try:
            target = self._path.expanduser()
        except RuntimeError as exc:
            raise PersistError(f"resolving token file path {self._path}: {exc}") from exc

        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, TOKEN_FILE_MODE)
            with os.fdopen(fd, "wb") as fh:
                # O_CREAT's mode only applies to new files.
                os.fchmod(fh.fileno(), TOKEN_FILE_MODE)
                fh.write(token.encode())
        except OSError as exc:
            raise PersistError(f"writing token file {target}: {exc}") from exc

        logger.debug("Token written to %s", target)
        return target
