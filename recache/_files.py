from __future__ import annotations

from pathlib import Path

import anyio


class AsyncFileManager:
    async def write_to(self, path: Path, data: bytes) -> None:
        async with await anyio.open_file(path, "wb") as f:
            await f.write(data)

    async def read_from(self, path: Path) -> bytes:
        async with await anyio.open_file(path, "rb") as f:
            return await f.read()


class FileManager:
    def write_to(self, path: Path, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    def read_from(self, path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()
