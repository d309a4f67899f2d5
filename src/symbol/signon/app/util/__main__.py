import argparse
import asyncio
import logging
import secrets
from typing import List, Optional

from symbol.signon.app.config import Settings
from symbol.signon.app.server import create_store
from symbol.signon.oauth.flow import is_valid_redirect_uri
from symbol.signon.store.base import Client, Store

logger = logging.getLogger(__name__)


async def registerClient(
    store: Store,
    client_id: str,
    redirect_uris: List[str],
    app_name: Optional[str],
    production: bool,
) -> None:
    for redirect_uri in redirect_uris:
        if not is_valid_redirect_uri(redirect_uri, production):
            print(f"Invalid redirect URI: {redirect_uri}")
            return

    existing = await store.find_client(client_id)
    client = Client(
        client_id=client_id,
        trusted_redirect_uris=redirect_uris,
        app_name=app_name,
    )
    await store.save_client(client)

    action = "updated" if existing is not None else "registered"
    print(f"{client_id} {action}: {', '.join(redirect_uris)}")


async def listClients(store: Store) -> None:
    for client in await store.list_clients():
        print(f"{client.client_id}\t{client.app_name or '-'}")
        for redirect_uri in client.trusted_redirect_uris:
            print(f"  {redirect_uri}")


async def genSecret() -> None:
    print(secrets.token_urlsafe(48))


async def realMain() -> None:
    parser = argparse.ArgumentParser(
        prog="signon-util", description="Sign-on utilities"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    _ = subparsers.add_parser("gen-secret", help="Generate a JWT signing secret")
    _ = subparsers.add_parser("list-clients", help="List registered clients")
    register_client = subparsers.add_parser(
        "register-client", help="Register or update a client application"
    )

    register_client.add_argument("client_id", help="The client identifier.")
    register_client.add_argument(
        "redirect_uris", nargs="+", help="Trusted redirect URIs for the client."
    )
    register_client.add_argument(
        "--app-name", default=None, help="Name shown to the user while signing."
    )

    args = vars(parser.parse_args())
    command = args.get("command", None)

    if command == "gen-secret":
        await genSecret()
        return

    settings = Settings()  # type: ignore
    store = create_store(settings)
    try:
        if command == "list-clients":
            await listClients(store)
        elif command == "register-client":
            await registerClient(
                store,
                args["client_id"],
                args["redirect_uris"],
                args.get("app_name"),
                settings.is_production,
            )
    finally:
        await store.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
