"""Resolution of the AppRole ``secret_id`` used to log in.

By default the host's own name is the secret: every machine of a fleet logs in
with the same role ID and its hostname.  An operator can override this per
host by dropping a file at ``Config.identity_path``.  Because that file holds
credential material, it is refused outright if group or others can read or
write it.
"""

from __future__ import annotations

import logging
import os
import socket
import stat

from vault_user_token.config import Config

logger = logging.getLogger(__name__)

# Any of these bits on the override file makes it unusable.
_INSECURE_BITS = stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH


class IdentityResolutionError(Exception):
    """Raised when the ``secret_id`` cannot be determined."""


class InsecurePermissionsError(IdentityResolutionError):
    """Raised when the override file is accessible to group or others."""


def resolve_identity(config: Config) -> str:
    """Return the ``secret_id`` for this host.

    Raises ``InsecurePermissionsError`` if the override file has group/other
    read or write bits, and ``IdentityResolutionError`` for any other I/O
    problem.  A missing override file is not an error.
    """
    override = _read_override(config)
    if override is not None:
        logger.info("Using secret_id from override file %s", config.identity_path)
        return override

    hostname = _hostname(config.use_full_hostname)
    logger.debug("Using hostname %r as secret_id", hostname)
    return hostname


def _read_override(config: Config) -> str | None:
    path = config.identity_path.expanduser()

    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise IdentityResolutionError(f"checking secret_id file {path}: {exc}") from exc

    if mode & _INSECURE_BITS:
        raise InsecurePermissionsError(
            f"secret_id file {path} has insecure permissions "
            f"{stat.filemode(mode)}; it must not be accessible by group or others"
        )

    try:
        with open(path) as fh:
            content = fh.read()
    except FileNotFoundError:
        # Removed between stat and open: same as never having existed.
        return None
    except OSError as exc:
        raise IdentityResolutionError(f"reading secret_id file {path}: {exc}") from exc

    secret_id = content.strip()
    if not secret_id:
        raise IdentityResolutionError(f"secret_id file {path} is empty")
    return secret_id


def _hostname(use_full_hostname: bool) -> str:
    try:
        hostname = socket.gethostname()
    except OSError as exc:
        raise IdentityResolutionError(f"Could not resolve hostname: {exc}") from exc

    if not hostname:
        raise IdentityResolutionError("Could not resolve hostname: empty result")

    parts = hostname.split(".")
    if not use_full_hostname and len(parts) > 1:
        return parts[0]
    return hostname
