"""Sign-in commands -- run the device flow and manage stored sessions.

Provides the top-level ``devgrid-auth`` commands:

* ``login``    -- run the device authorization flow.
* ``logout``   -- remove the current session (or all of them).
* ``status``   -- show the signed-in account.
* ``token``    -- print a valid access token to stdout.
* ``sessions`` -- list every usable session.

Typical workflow::

    devgrid-auth login
    curl -H "Authorization: Bearer $(devgrid-auth token)" https://api.example.com/
    devgrid-auth logout
"""

from __future__ import annotations

import asyncio
import webbrowser
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from devgrid_auth.context import AuthContext
from devgrid_auth.exceptions import DevGridAuthError
from devgrid_auth.exit_codes import EXIT_NOT_AUTHENTICATED
from devgrid_auth.facade import DEFAULT_SCOPES
from devgrid_auth.models import DeviceCodeResponse
from devgrid_auth.orchestrator import VerificationPrompt
from devgrid_auth.output import error, get_output, info, notice, success, suggest

T = TypeVar("T")

ContextFactory = Callable[[Optional[VerificationPrompt], list[str]], AuthContext]


def make_terminal_prompt(open_browser: bool = True) -> VerificationPrompt:
    """Build a verification prompt that prints the user code to stderr.

    When *open_browser* is true the verification page is opened as well,
    preferring the URI with the code pre-filled.
    """

    async def _prompt(device: DeviceCodeResponse) -> None:
        notice(
            f"To sign in to DevGrid, open {device.verification_uri} "
            f"and enter the code {device.user_code}"
        )
        if open_browser and not webbrowser.open(device.browser_uri):
            info(f"Could not open a browser. Visit {device.browser_uri} manually.")
        info("Waiting for authorization...")

    return _prompt


def _default_factory(prompt: Optional[VerificationPrompt], scopes: list[str]) -> AuthContext:
    return AuthContext.create(prompt=prompt, scopes=scopes)


def _run(
    ctx: typer.Context,
    action: Callable[[AuthContext], Awaitable[T]],
    prompt: Optional[VerificationPrompt] = None,
    scopes: Optional[list[str]] = None,
) -> T:
    """Build an :class:`AuthContext`, run *action* on it, and map errors to exits."""
    obj: dict[str, Any] = ctx.obj if isinstance(ctx.obj, dict) else {}
    factory: ContextFactory = obj.get("context_factory") or _default_factory

    async def _main() -> T:
        async with factory(prompt, scopes or list(DEFAULT_SCOPES)) as auth:
            return await action(auth)

    try:
        return asyncio.run(_main())
    except DevGridAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def auth_login(
    ctx: typer.Context,
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Extra scope to request (repeatable)."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the verification URL instead of opening it."
    ),
) -> None:
    """Sign in with the device authorization flow.

    Requests a device code, shows the verification URL and user code, and
    waits until the sign-in is approved in a browser on any device.

    Example::

        devgrid-auth login
        devgrid-auth login --no-browser --scope read:repo
    """
    scopes = [*DEFAULT_SCOPES, *(scope or [])]
    prompt = make_terminal_prompt(open_browser=not no_browser)
    session = _run(ctx, lambda auth: auth.facade.sign_in(), prompt=prompt, scopes=scopes)
    success(f"Welcome, {session.account.label}!")


def auth_logout(
    ctx: typer.Context,
    all_accounts: bool = typer.Option(
        False, "--all", help="Remove every stored session."
    ),
) -> None:
    """Sign out, asking for confirmation unless ``--force`` is given.

    Example::

        devgrid-auth logout
        devgrid-auth --force logout --all
    """
    authenticated = _run(ctx, lambda auth: auth.facade.is_authenticated())
    if not authenticated and not all_accounts:
        info("You are not signed in to DevGrid.")
        return

    force = ctx.obj.get("force", False) if isinstance(ctx.obj, dict) else False
    if not force and not typer.confirm("Sign out of DevGrid?"):
        info("Cancelled.")
        return

    removed = _run(ctx, lambda auth: auth.facade.sign_out(all_accounts=all_accounts))
    if removed:
        success("Signed out of DevGrid.")
    else:
        info("You are not signed in to DevGrid.")


def auth_status(ctx: typer.Context) -> None:
    """Show the signed-in account.

    Exits with code 4 when no valid session exists.
    """
    session = _run(ctx, lambda auth: auth.facade.current_session())
    if session is None:
        info("You are not signed in to DevGrid.")
        suggest("Sign in: devgrid-auth login")
        raise typer.Exit(code=EXIT_NOT_AUTHENTICATED)

    get_output().print_account(session)


def auth_token(ctx: typer.Context) -> None:
    """Print a valid access token to stdout, refreshing it if needed.

    Exits with code 4 when no valid session exists.
    """
    token = _run(ctx, lambda auth: auth.facade.get_access_token())
    if token is None:
        error("You are not signed in to DevGrid.")
        raise typer.Exit(code=EXIT_NOT_AUTHENTICATED)
    get_output().print_token(token)


def auth_sessions(ctx: typer.Context) -> None:
    """List every usable session."""
    sessions = _run(ctx, lambda auth: auth.orchestrator.get_sessions())
    if not sessions:
        info("No sessions stored.")
        return
    get_output().print_sessions(sessions)
