"""CLI entry point: ties together configuration, Vault login and the renewal loop."""

from __future__ import annotations

import argparse
import importlib.metadata
import logging
import signal
import sys
import threading

from rich.console import Console
from rich.markup import escape

from vault_user_token.agent.renewer import RenewalAgent
from vault_user_token.auth.identity import IdentityResolutionError
from vault_user_token.auth.vault_authenticator import VaultAuthenticationError, VaultAuthenticator
from vault_user_token.config import Config, ConfigError, load_config
from vault_user_token.store.token_file import PersistError, TokenFileStore

logger = logging.getLogger(__name__)
console = Console()
err_console = Console(stderr=True)


def _version() -> str:
    try:
        return importlib.metadata.version("vault-user-token")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-user-token",
        description="Log in to Vault via AppRole and keep ~/.vault-token renewed",
    )
    parser.add_argument("--config", default=None, help="Path to a YAML settings file")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (debug, info, warning, error)",
    )
    parser.add_argument(
        "--full-hostname",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use the full reported hostname (default) or only the first part",
    )
    parser.add_argument("--vault-addr", default=None, help="Vault API address [env: VAULT_ADDR]")
    parser.add_argument("--vault-role-id", default=None, help="ID of the role to use [env: VAULT_ROLE_ID]")
    parser.add_argument("--approle-mount", default=None, help="Mount point of the AppRole auth method")
    parser.add_argument("--token-file", default=None, help="Where to write the token (default ~/.vault-token)")
    parser.add_argument("--secret-id-file", default=None, help="Override file holding the secret_id")
    parser.add_argument(
        "--reread-identity",
        action="store_true",
        default=None,
        help="Resolve the secret_id again before every re-login",
    )
    parser.add_argument("--version", action="store_true", help="Prints current version and exits")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    return load_config(
        overrides={
            "vault_addr": args.vault_addr,
            "role_id": args.vault_role_id,
            "use_full_hostname": args.full_hostname,
            "log_level": args.log_level,
            "approle_mount": args.approle_mount,
            "token_path": args.token_file,
            "identity_path": args.secret_id_file,
            "reread_identity": args.reread_identity,
        },
        settings_path=args.config,
    )


def _fatal(message: str, exc: Exception) -> int:
    err_console.print(f"[red]{message}:[/red] {escape(str(exc))}")
    return 1


def _install_signal_handlers(shutdown: threading.Event) -> None:
    def _handle(_signum: int, _frame: object) -> None:
        shutdown.set()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the agent and return the process exit code."""
    args = build_parser().parse_args(argv)

    if args.version:
        console.print(f"vault-user-token {_version()}", highlight=False)
        return 0

    try:
        config = config_from_args(args)
    except ConfigError as exc:
        return _fatal("Invalid configuration", exc)

    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        authenticator = VaultAuthenticator(
            vault_addr=config.vault_addr,
            mount_point=config.approle_mount,
        )
    except VaultAuthenticationError as exc:
        return _fatal("Unable to create vault client", exc)

    shutdown = threading.Event()
    _install_signal_handlers(shutdown)

    agent = RenewalAgent(
        config=config,
        authenticator=authenticator,
        store=TokenFileStore(config.token_path),
        shutdown=shutdown,
    )

    try:
        agent.run()
    except IdentityResolutionError as exc:
        return _fatal("Unable to determine secret_id", exc)
    except PersistError as exc:
        return _fatal("Unable to persist token", exc)
    except VaultAuthenticationError as exc:
        return _fatal("Unable to authenticate vault", exc)

    if shutdown.is_set():
        logger.info("Shutdown requested, exiting")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
