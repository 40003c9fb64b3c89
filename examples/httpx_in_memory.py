#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "recache",
# ]
#
# [tool.uv.sources]
# recache = { path = "../", editable = true }
# ///

import logging

import httpx

from recache import CacheTransport, InMemoryStorage

logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

transport = CacheTransport(transport=httpx.HTTPTransport(), storage=InMemoryStorage())

with httpx.Client(transport=transport) as client:
    client.get("https://www.python.org/")
    response = client.get("https://www.python.org/", headers={"Range": "bytes=0-99"})
    print(response.status_code, response.headers.get("Content-Range"), response.extensions)
