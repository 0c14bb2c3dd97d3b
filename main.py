#!/usr/bin/env python3
"""
magic-login -- Passwordless, single-use login links for operators.

Usage:
  magic-login as alice
  magic-login as alice@example.com --url-only
  magic-login as 42 --launch
  magic-login invalidate
  magic-login install --activate
  magic-login toggle [on|off]
  magic-login add-account alice alice@example.com

Every link self-destructs after 5 minutes or on first use, whichever comes
first. `invalidate` kills every outstanding link at once.

Environment variables (see core/config.py for the full list):
  HOME_URL       Public base URL of the site the links log in to.
  DATABASE_URL   SQLAlchemy URL shared with the companion server.
  TOKEN_DB_PATH  SQLite file holding the pending links, shared with the server.
"""

import argparse
import logging
import sys
import webbrowser
from typing import Optional

from auth.endpoint import EndpointRegistry
from auth.locator import classify_locator
from auth.magic import mint
from auth.models import Account
from auth.store import AccountStore
from cache.store import TokenCache
from core.companion import CompanionServer
from core.config import Settings, get_settings
from core.errors import LaunchFailed, MagicLoginError
from core.options import OptionStore

logger = logging.getLogger("magiclogin.cli")


def _success(message: str) -> None:
    print(f"Success: {message}")


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _launch(url: str) -> None:
    """Open url in the default browser. Raises LaunchFailed if nothing could open it."""
    logger.debug("Attempting to launch magic login with system browser...")
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        raise LaunchFailed(f"Could not launch browser: {exc}") from exc
    if not opened:
        raise LaunchFailed("Could not launch browser: no usable browser found.")
    _success("Magic link launched!")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_as(args: argparse.Namespace, settings: Settings, options: OptionStore) -> None:
    """Create a magic login link for the account named by args.locator."""
    CompanionServer(options).require_active()

    accounts = AccountStore(settings.database_url)
    cache = TokenCache(settings.token_db_path)
    try:
        account = accounts.resolve(classify_locator(args.locator))
        link = mint(
            account,
            EndpointRegistry(options),
            cache,
            settings.home_url,
            ttl=settings.magic_link_ttl_seconds,
        )
    finally:
        cache.close()
        accounts.close()

    if args.url_only:
        print(link.url)
        return

    minutes = max(1, settings.magic_link_ttl_seconds // 60)
    _success("Magic login link created!")
    print(link.url)
    print(
        f"This link will self-destruct in {minutes} minutes, or as soon as it is used; whichever comes first."
    )

    if args.launch:
        try:
            _launch(link.url)
        except LaunchFailed as exc:
            # The link was already printed and stays valid.
            print(f"Warning: {exc}", file=sys.stderr)


def cmd_invalidate(args: argparse.Namespace, settings: Settings, options: OptionStore) -> None:
    """Rotate the endpoint secret so every outstanding link stops resolving."""
    CompanionServer(options).require_active()
    EndpointRegistry(options).rotate()
    _success("Magic links invalidated.")


def cmd_install(args: argparse.Namespace, settings: Settings, options: OptionStore) -> None:
    companion = CompanionServer(options)
    companion.install()
    if companion.is_installed():
        _success("Companion server installed.")
    if args.activate:
        _toggle(companion, "on")


def cmd_toggle(args: argparse.Namespace, settings: Settings, options: OptionStore) -> None:
    _toggle(CompanionServer(options), args.state)


def _toggle(companion: CompanionServer, state: Optional[str]) -> None:
    new_state = companion.toggle(state)
    _success(f"Companion server {'activated' if new_state == 'on' else 'deactivated'}.")


def cmd_add_account(args: argparse.Namespace, settings: Settings, options: OptionStore) -> None:
    accounts = AccountStore(settings.database_url)
    try:
        account_id = accounts.create_account(Account(login=args.login, email=args.email))
    finally:
        accounts.close()
    _success(f"Created account #{account_id} ({args.login}).")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="magic-login",
        description="Manage magic passwordless logins.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  magic-login install --activate
  magic-login as alice
  magic-login as alice@example.com --url-only
  magic-login invalidate
        """,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print debug messages",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_as = sub.add_parser("as", help="Get a magic login URL for the given account")
    p_as.add_argument(
        "locator",
        metavar="ACCOUNT",
        help="Account ID, login, or email address of the account to log in as",
    )
    p_as.add_argument("--url-only", action="store_true", help="Output the magic link URL only")
    p_as.add_argument("--launch", action="store_true", help="Open the magic link in your web browser")
    p_as.set_defaults(func=cmd_as)

    p_inv = sub.add_parser("invalidate", help="Invalidate any existing magic links")
    p_inv.set_defaults(func=cmd_invalidate)

    p_install = sub.add_parser("install", help="Install/refresh the companion server")
    p_install.add_argument("--activate", action="store_true", help="Activate the companion after installing")
    p_install.set_defaults(func=cmd_install)

    p_toggle = sub.add_parser("toggle", help="Toggle the companion server on or off")
    p_toggle.add_argument(
        "state",
        nargs="?",
        metavar="on|off",
        help="Desired state (default: flip the current state)",
    )
    p_toggle.set_defaults(func=cmd_toggle)

    p_add = sub.add_parser("add-account", help="Add an account to the account directory")
    p_add.add_argument("login")
    p_add.add_argument("email")
    p_add.set_defaults(func=cmd_add_account)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="Debug: [login] %(message)s")

    if not getattr(args, "func", None):
        parser.print_help()
        return

    try:
        settings = get_settings()
    except ValueError as exc:
        _fail(str(exc))

    try:
        options = OptionStore(settings.database_url)
        try:
            args.func(args, settings, options)
        finally:
            options.close()
    except MagicLoginError as exc:
        _fail(str(exc))


if __name__ == "__main__":
    main()
