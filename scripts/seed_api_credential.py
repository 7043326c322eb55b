from __future__ import annotations

import argparse
import asyncio
import datetime as dt

from sqlalchemy import select

from bren_api.auth.tokens import generate_api_key
from bren_api.db.models import ApiCredential
from bren_api.db.session import create_sessionmaker
from bren_api.settings import get_settings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Issue or revoke an x-api-key credential.")
    parser.add_argument("name", help="Label for the client that will use the key.")
    parser.add_argument("--api-key", help="Use this key instead of generating one.")
    parser.add_argument(
        "--deactivate",
        action="store_true",
        help="Deactivate every credential with this name instead of issuing one.",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    settings = get_settings()
    sessionmaker = create_sessionmaker(settings.database_url)

    async with sessionmaker() as db:
        if args.deactivate:
            credentials = (
                await db.scalars(select(ApiCredential).where(ApiCredential.name == args.name))
            ).all()
            for credential in credentials:
                credential.is_active = False
            await db.commit()
            print(f"Deactivated {len(credentials)} credential(s) named {args.name}.")
            return

        api_key = args.api_key or generate_api_key()
        db.add(
            ApiCredential(
                api_key=api_key,
                name=args.name,
                is_active=True,
                created_at=dt.datetime.now(dt.UTC),
            )
        )
        await db.commit()

    print(f"Issued API key for {args.name}: {api_key}")


if __name__ == "__main__":
    asyncio.run(main())
