from __future__ import annotations

import logging
import os
import time
import typing as tp
from pathlib import Path

try:
    import anysqlite
except ImportError:  # pragma: no cover
    anysqlite = None  # type: ignore

from .._files import AsyncFileManager
from .._lfu_cache import LFUCache
from .._synchronization import AsyncLock
from .._utils import ensure_cache_dict

logger = logging.getLogger("recache.storages")

__all__ = (
    "AsyncBaseStorage",
    "AsyncFileStorage",
    "AsyncInMemoryStorage",
    "AsyncSQLiteStorage",
)


class AsyncBaseStorage:
    """
    The storage capability used by the cache.

    Storages keep opaque serialized responses under string keys
    and must be safe to use from concurrent requests.
    """

    def __init__(self, ttl: tp.Optional[tp.Union[int, float]] = None) -> None:
        self._ttl = ttl

    async def store(self, key: str, data: bytes) -> None:
        raise NotImplementedError()

    async def retrieve(self, key: str) -> tp.Optional[bytes]:
        raise NotImplementedError()

    async def remove(self, key: str) -> None:
        raise NotImplementedError()

    async def aclose(self) -> None:
        return


class AsyncFileStorage(AsyncBaseStorage):
    """
    A simple file storage.

    :param base_path: A storage base path where the responses should be saved, defaults to None
    :type base_path: tp.Optional[Path], optional
    :param ttl: Specifies the maximum number of seconds that the response can be cached, defaults to None
    :type ttl: tp.Optional[tp.Union[int, float]], optional
    :param check_ttl_every: How often in seconds to check staleness of **all** cache files.
        Makes sense only with set `ttl`, defaults to 60
    :type check_ttl_every: tp.Union[int, float]
    """

    def __init__(
        self,
        base_path: tp.Optional[Path] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
        check_ttl_every: tp.Union[int, float] = 60,
    ) -> None:
        super().__init__(ttl)

        self._base_path = ensure_cache_dict(base_path)
        self._file_manager = AsyncFileManager()
        self._lock = AsyncLock()
        self._check_ttl_every = check_ttl_every
        self._last_cleaned = time.monotonic()

    async def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        response_path = self._base_path / key

        async with self._lock:
            await self._file_manager.write_to(response_path, data)
        await self._remove_expired_caches(response_path)

    async def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        response_path = self._base_path / key

        await self._remove_expired_caches(response_path)
        async with self._lock:
            if response_path.is_file():
                data = await self._file_manager.read_from(response_path)
                if data:
                    return data
        return None

    async def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        response_path = self._base_path / key

        async with self._lock:
            if response_path.exists():
                response_path.unlink()

    async def _remove_expired_caches(self, response_path: Path) -> None:
        if self._ttl is None:
            return

        if time.monotonic() - self._last_cleaned < self._check_ttl_every:
            if response_path.is_file():
                age = time.time() - response_path.stat().st_mtime
                if age > self._ttl:
                    logger.debug(f"Removing the expired file {response_path.name}.")
                    response_path.unlink()
            return

        self._last_cleaned = time.monotonic()
        async with self._lock:
            with os.scandir(self._base_path) as entries:
                for entry in entries:
                    if entry.name == ".gitignore":
                        continue
                    try:
                        if entry.is_file():
                            age = time.time() - entry.stat().st_mtime
                            if age > self._ttl:
                                os.unlink(entry.path)
                    except FileNotFoundError:  # pragma: no cover
                        pass


class AsyncSQLiteStorage(AsyncBaseStorage):
    """
    A simple sqlite3 storage.

    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[anysqlite.Connection], optional
    :param ttl: Specifies the maximum number of seconds that the response can be cached, defaults to None
    :type ttl: tp.Optional[tp.Union[int, float]], optional
    """

    def __init__(
        self,
        connection: tp.Optional[anysqlite.Connection] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
    ) -> None:
        if anysqlite is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `recache` installed with the `sqlite` extension as shown.\n"
                "```pip install recache[sqlite]```"
            )
        super().__init__(ttl)

        self._connection: tp.Optional[anysqlite.Connection] = connection or None
        self._setup_lock = AsyncLock()
        self._setup_completed: bool = False
        self._lock = AsyncLock()

    async def _setup(self) -> None:
        async with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = await anysqlite.connect(".recache.sqlite", check_same_thread=False)
                await self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS cache(key TEXT PRIMARY KEY, data BLOB, date_created REAL)"
                )
                await self._connection.commit()
                self._setup_completed = True

    async def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        await self._setup()
        assert self._connection

        async with self._lock:
            await self._connection.execute("DELETE FROM cache WHERE key = ?", [key])
            await self._connection.execute(
                "INSERT INTO cache(key, data, date_created) VALUES(?, ?, ?)", [key, data, time.time()]
            )
            await self._connection.commit()
        await self._remove_expired_caches()

    async def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        await self._setup()
        assert self._connection

        await self._remove_expired_caches()
        async with self._lock:
            cursor = await self._connection.execute("SELECT data FROM cache WHERE key = ?", [key])
            row = await cursor.fetchone()
            if row is None:
                return None
            return tp.cast(bytes, row[0])

    async def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        await self._setup()
        assert self._connection

        async with self._lock:
            await self._connection.execute("DELETE FROM cache WHERE key = ?", [key])
            await self._connection.commit()

    async def aclose(self) -> None:  # pragma: no cover
        if self._connection is not None:
            await self._connection.close()

    async def _remove_expired_caches(self) -> None:
        assert self._connection
        if self._ttl is None:
            return

        async with self._lock:
            await self._connection.execute("DELETE FROM cache WHERE date_created + ? < ?", [self._ttl, time.time()])
            await self._connection.commit()


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    A simple in-memory storage.

    :param ttl: Specifies the maximum number of seconds that the response can be cached, defaults to None
    :type ttl: tp.Optional[tp.Union[int, float]], optional
    :param capacity: The maximum number of responses that can be cached, defaults to 128
    :type capacity: int, optional
    """

    def __init__(
        self,
        ttl: tp.Optional[tp.Union[int, float]] = None,
        capacity: int = 128,
    ) -> None:
        super().__init__(ttl)

        self._cache: LFUCache[str, tp.Tuple[bytes, float]] = LFUCache(capacity=capacity)
        self._lock = AsyncLock()

    async def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        async with self._lock:
            self._cache.put(key, (data, time.monotonic()))
        await self._remove_expired_caches()

    async def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        await self._remove_expired_caches()
        async with self._lock:
            try:
                data, _ = self._cache.get(key)
            except KeyError:
                return None
            return data

    async def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        async with self._lock:
            self._cache.remove_key(key)

    async def _remove_expired_caches(self) -> None:
        if self._ttl is None:
            return

        async with self._lock:
            keys_to_remove = set()

            for key in self._cache:
                _, created_at = self._cache.peek(key)

                if time.monotonic() - created_at > self._ttl:
                    keys_to_remove.add(key)

            for key in keys_to_remove:
                self._cache.remove_key(key)
