import os

import anyio
import anysqlite
import pytest

from recache import AsyncFileStorage, AsyncInMemoryStorage, AsyncSQLiteStorage

dummy_data = b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\ntest"


@pytest.mark.anyio
async def test_filestorage(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path)

    await storage.store("key", dummy_data)

    assert await storage.retrieve("key") == dummy_data
    assert (tmp_path / "key").read_bytes() == dummy_data
    assert (tmp_path / ".gitignore").is_file()


@pytest.mark.anyio
async def test_filestorage_default_path(use_temp_dir):
    storage = AsyncFileStorage()

    await storage.store("key", dummy_data)

    assert os.path.isfile(".cache/recache/key")
    assert await storage.retrieve("key") == dummy_data


@pytest.mark.anyio
async def test_filestorage_missing_key(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path)

    assert await storage.retrieve("key") is None
    await storage.remove("key")


@pytest.mark.anyio
async def test_filestorage_remove(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path)

    await storage.store("key", dummy_data)
    await storage.remove("key")

    assert await storage.retrieve("key") is None
    assert not (tmp_path / "key").exists()


@pytest.mark.anyio
async def test_filestorage_overwrite(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path)

    await storage.store("key", b"first")
    await storage.store("key", b"second")

    assert await storage.retrieve("key") == b"second"


@pytest.mark.anyio
async def test_filestorage_expired(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path, ttl=60)

    await storage.store("key", dummy_data)

    expired = os.stat(tmp_path / "key").st_mtime - 120
    os.utime(tmp_path / "key", (expired, expired))

    assert await storage.retrieve("key") is None
    assert not (tmp_path / "key").exists()


@pytest.mark.anyio
async def test_filestorage_removes_all_expired_files(tmp_path):
    storage = AsyncFileStorage(base_path=tmp_path, ttl=60, check_ttl_every=0)

    await storage.store("first", dummy_data)
    await storage.store("second", dummy_data)

    expired = os.stat(tmp_path / "first").st_mtime - 120
    os.utime(tmp_path / "first", (expired, expired))

    assert await storage.retrieve("second") == dummy_data
    assert not (tmp_path / "first").exists()
    assert (tmp_path / ".gitignore").is_file()


@pytest.mark.anyio
async def test_sqlitestorage():
    storage = AsyncSQLiteStorage(connection=await anysqlite.connect(":memory:"))

    await storage.store("key", dummy_data)
    assert await storage.retrieve("key") == dummy_data

    await storage.store("key", b"second")
    assert await storage.retrieve("key") == b"second"

    await storage.remove("key")
    assert await storage.retrieve("key") is None
    await storage.aclose()


@pytest.mark.anyio
async def test_sqlitestorage_expired():
    storage = AsyncSQLiteStorage(connection=await anysqlite.connect(":memory:"), ttl=0.1)

    await storage.store("key", dummy_data)
    assert await storage.retrieve("key") == dummy_data

    await anyio.sleep(0.3)

    assert await storage.retrieve("key") is None
    await storage.aclose()


@pytest.mark.anyio
async def test_inmemorystorage():
    storage = AsyncInMemoryStorage()

    await storage.store("key", dummy_data)
    assert await storage.retrieve("key") == dummy_data

    await storage.remove("key")
    assert await storage.retrieve("key") is None


@pytest.mark.anyio
async def test_inmemorystorage_expired():
    storage = AsyncInMemoryStorage(ttl=0.1)

    await storage.store("key", dummy_data)
    assert await storage.retrieve("key") == dummy_data

    await anyio.sleep(0.3)

    assert await storage.retrieve("key") is None


@pytest.mark.anyio
async def test_inmemorystorage_capacity():
    storage = AsyncInMemoryStorage(capacity=2)

    await storage.store("first", b"first")
    await storage.store("second", b"second")

    # "second" becomes the least frequently used one
    assert await storage.retrieve("first") == b"first"

    await storage.store("third", b"third")

    assert await storage.retrieve("second") is None
    assert await storage.retrieve("first") == b"first"
    assert await storage.retrieve("third") == b"third"
