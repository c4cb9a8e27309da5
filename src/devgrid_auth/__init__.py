"""devgrid-auth -- OAuth 2.0 device-flow sign-in for headless DevGrid clients.

This package obtains, stores, refreshes and revokes bearer credentials for
tools that cannot open a browser themselves. Sign-in uses the Device
Authorization Grant (:rfc:`8628`): the user approves the request on any
device while the client polls for tokens.

Typical usage::

    from devgrid_auth.context import AuthContext

    async with AuthContext.create() as ctx:
        token = await ctx.facade.get_access_token()

Modules:
    client: Form-encoded transport to the authorization server.
    session_store: Persistence of the session list in a secret store.
    validator: Freshness checks and refresh-token exchange.
    orchestrator: Device flow state machine and session CRUD.
    facade: Consumer-facing token/account API.
    context: Application context wiring the above together.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"
