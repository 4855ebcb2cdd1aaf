"""Agent configuration assembled from flags, environment and a settings file.

The renewal agent never reads ``os.environ`` or the command line itself: the
CLI builds one frozen ``Config`` up front and passes it down.  Sources are
layered, highest priority first:

  1. Command-line flags (only those the user actually passed).
  2. Environment variables (``VAULT_ADDR``, ``VAULT_ROLE_ID``).
  3. The optional YAML settings file (``vault:`` and ``agent:`` sections).
  4. Built-in defaults.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import urllib.parse
from typing import Any, Iterable, Mapping

import yaml

DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"
DEFAULT_APPROLE_MOUNT = "approle"
DEFAULT_TOKEN_PATH = "~/.vault-token"
DEFAULT_RENEW_INCREMENT = 900
DEFAULT_RENEWAL_MARGIN = 30

# Level names understood on the command line, mapped to ``logging`` levels.
LOG_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


class ConfigError(Exception):
    """Raised when the startup configuration is missing or malformed."""


# Settings-file key -> Config field.
_VAULT_SECTION_KEYS: dict[str, str] = {
    "address": "vault_addr",
    "role_id": "role_id",
    "approle_mount": "approle_mount",
}

_AGENT_SECTION_KEYS = frozenset({
    "use_full_hostname",
    "log_level",
    "token_path",
    "identity_path",
    "renew_increment",
    "renewal_margin",
    "reread_identity",
})


def default_identity_path() -> pathlib.Path:
    """Location of the optional ``secret_id`` override file."""
    base = os.environ.get("XDG_CONFIG_HOME") or str(pathlib.Path("~/.config").expanduser())
    return pathlib.Path(base) / "vault-user-token" / "secret-id"


@dataclasses.dataclass(frozen=True)
class Config:
    """Validated, immutable agent configuration.

    Attributes:
        vault_addr:        Vault API address.
        role_id:           AppRole role ID used for every login.
        use_full_hostname: Use the full hostname as ``secret_id`` (``False``
                           keeps only the first label).
        log_level:         One of the names in ``LOG_LEVELS``.
        approle_mount:     Mount point of the AppRole auth method.
        token_path:        Where the client token is written.
        identity_path:     Optional ``secret_id`` override file.
        renew_increment:   Lease extension requested on each renewal, seconds.
        renewal_margin:    Seconds before lease expiry at which to renew.
        reread_identity:   Re-resolve the ``secret_id`` before every re-login.
    """

    vault_addr: str
    role_id: str
    use_full_hostname: bool = True
    log_level: str = "info"
    approle_mount: str = DEFAULT_APPROLE_MOUNT
    token_path: pathlib.Path = pathlib.Path(DEFAULT_TOKEN_PATH)
    identity_path: pathlib.Path = dataclasses.field(default_factory=default_identity_path)
    renew_increment: int = DEFAULT_RENEW_INCREMENT
    renewal_margin: int = DEFAULT_RENEWAL_MARGIN
    reread_identity: bool = False

    def __post_init__(self) -> None:
        if not self.role_id:
            raise ConfigError("You need to supply a role id for this to work")

        parsed = urllib.parse.urlparse(self.vault_addr)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Invalid Vault address: {self.vault_addr!r}")

        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigError(
                f"Unable to parse log level: {self.log_level!r} "
                f"(expected one of {', '.join(LOG_LEVELS)})"
            )

        if not self.approle_mount:
            raise ConfigError("AppRole mount point must not be empty")

        for name in ("renew_increment", "renewal_margin"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @property
    def logging_level(self) -> int:
        return LOG_LEVELS[self.log_level.lower()]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Config:
        """Build a ``Config`` from a flat mapping, applying defaults for missing keys."""
        try:
            return cls(
                vault_addr=str(data.get("vault_addr") or DEFAULT_VAULT_ADDR),
                role_id=str(data.get("role_id") or ""),
                use_full_hostname=_as_bool(data.get("use_full_hostname", True)),
                log_level=str(data.get("log_level") or "info"),
                approle_mount=str(data.get("approle_mount") or DEFAULT_APPROLE_MOUNT),
                token_path=pathlib.Path(data.get("token_path") or DEFAULT_TOKEN_PATH),
                identity_path=pathlib.Path(data.get("identity_path") or default_identity_path()),
                renew_increment=int(data.get("renew_increment", DEFAULT_RENEW_INCREMENT)),
                renewal_margin=int(data.get("renewal_margin", DEFAULT_RENEWAL_MARGIN)),
                reread_identity=_as_bool(data.get("reread_identity", False)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc


def load_settings_file(path: str | pathlib.Path) -> dict[str, Any]:
    """Flatten the ``vault:`` and ``agent:`` sections of a YAML settings file."""
    settings_path = pathlib.Path(path).expanduser()
    try:
        with open(settings_path) as fh:
            raw = yaml.safe_load(fh) or {}
    except OSError as exc:
        raise ConfigError(f"Unable to read settings file {settings_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse settings file {settings_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file {settings_path} must contain a mapping")

    vault_cfg = raw.get("vault") or {}
    agent_cfg = raw.get("agent") or {}
    if not isinstance(vault_cfg, dict) or not isinstance(agent_cfg, dict):
        raise ConfigError("The 'vault' and 'agent' sections must be mappings")

    _reject_unknown_keys("vault", vault_cfg, _VAULT_SECTION_KEYS)
    _reject_unknown_keys("agent", agent_cfg, _AGENT_SECTION_KEYS)

    flat: dict[str, Any] = {_VAULT_SECTION_KEYS[key]: value for key, value in vault_cfg.items()}
    flat.update(agent_cfg)
    return flat


def load_config(
    overrides: Mapping[str, Any] | None = None,
    settings_path: str | pathlib.Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Layer settings file, environment and *overrides* into a ``Config``.

    ``None`` values in *overrides* mean "not given" and do not shadow lower
    layers.
    """
    if environ is None:
        environ = os.environ

    merged: dict[str, Any] = {}
    if settings_path is not None:
        merged.update(load_settings_file(settings_path))

    if environ.get("VAULT_ADDR"):
        merged["vault_addr"] = environ["VAULT_ADDR"]
    if environ.get("VAULT_ROLE_ID"):
        merged["role_id"] = environ["VAULT_ROLE_ID"]

    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    return Config.from_mapping(merged)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    raise ConfigError(f"Expected a boolean, got {value!r}")


def _reject_unknown_keys(section: str, data: Mapping[str, Any], known: Iterable[str]) -> None:
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in '{section}' section: {', '.join(map(str, unknown))}"
        )
