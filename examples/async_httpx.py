#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "recache[sqlite]",
# ]
#
# [tool.uv.sources]
# recache = { path = "../", editable = true }
# ///

import asyncio

import anysqlite
import httpx

from recache import AsyncCacheTransport, AsyncSQLiteStorage


async def fetch_and_print(client: httpx.AsyncClient, url: str) -> None:
    print(f"\n➡ Sending request to {url}...")
    response = await client.get(url)

    print(f"🔄 From Cache: {response.extensions['from_cache']}")
    print(f"📍 Revalidated: {response.extensions.get('revalidated', False)}")


async def main() -> None:
    url = "https://www.python.org/"
    storage = AsyncSQLiteStorage(connection=await anysqlite.connect(":memory:"))
    transport = AsyncCacheTransport(transport=httpx.AsyncHTTPTransport(), storage=storage)

    async with httpx.AsyncClient(transport=transport) as client:
        await fetch_and_print(client, url)
        await fetch_and_print(client, url)


if __name__ == "__main__":
    asyncio.run(main())
