from __future__ import annotations

import logging
import os
import time
import typing as tp
from pathlib import Path

try:
    import sqlite3
except ImportError:  # pragma: no cover
    sqlite3 = None  # type: ignore

from .._files import FileManager
from .._lfu_cache import LFUCache
from .._synchronization import Lock
from .._utils import ensure_cache_dict

logger = logging.getLogger("recache.storages")

__all__ = (
    "BaseStorage",
    "FileStorage",
    "InMemoryStorage",
    "SQLiteStorage",
)


class BaseStorage:
    """
    The storage capability used by the cache.

    Storages keep opaque serialized responses under string keys
    and must be safe to use from concurrent requests.
    """

    def __init__(self, ttl: tp.Optional[tp.Union[int, float]] = None) -> None:
        self._ttl = ttl

    def store(self, key: str, data: bytes) -> None:
        raise NotImplementedError()

    def retrieve(self, key: str) -> tp.Optional[bytes]:
        raise NotImplementedError()

    def remove(self, key: str) -> None:
        raise NotImplementedError()

    def close(self) -> None:
        return


class FileStorage(BaseStorage):
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
        self._file_manager = FileManager()
        self._lock = Lock()
        self._check_ttl_every = check_ttl_every
        self._last_cleaned = time.monotonic()

    def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        response_path = self._base_path / key

        with self._lock:
            self._file_manager.write_to(response_path, data)
        self._remove_expired_caches(response_path)

    def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        response_path = self._base_path / key

        self._remove_expired_caches(response_path)
        with self._lock:
            if response_path.is_file():
                data = self._file_manager.read_from(response_path)
                if data:
                    return data
        return None

    def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        response_path = self._base_path / key

        with self._lock:
            if response_path.exists():
                response_path.unlink()

    def _remove_expired_caches(self, response_path: Path) -> None:
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
        with self._lock:
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


class SQLiteStorage(BaseStorage):
    """
    A simple sqlite3 storage.

    :param connection: A connection for sqlite, defaults to None
    :type connection: tp.Optional[sqlite3.Connection], optional
    :param ttl: Specifies the maximum number of seconds that the response can be cached, defaults to None
    :type ttl: tp.Optional[tp.Union[int, float]], optional
    """

    def __init__(
        self,
        connection: tp.Optional[sqlite3.Connection] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
    ) -> None:
        if sqlite3 is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `recache` installed with the `sqlite` extension as shown.\n"
                "```pip install recache[sqlite]```"
            )
        super().__init__(ttl)

        self._connection: tp.Optional[sqlite3.Connection] = connection or None
        self._setup_lock = Lock()
        self._setup_completed: bool = False
        self._lock = Lock()

    def _setup(self) -> None:
        with self._setup_lock:
            if not self._setup_completed:
                if not self._connection:  # pragma: no cover
                    self._connection = sqlite3.connect(".recache.sqlite", check_same_thread=False)
                self._connection.execute(
                    "CREATE TABLE IF NOT EXISTS cache(key TEXT PRIMARY KEY, data BLOB, date_created REAL)"
                )
                self._connection.commit()
                self._setup_completed = True

    def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        self._setup()
        assert self._connection

        with self._lock:
            self._connection.execute("DELETE FROM cache WHERE key = ?", [key])
            self._connection.execute(
                "INSERT INTO cache(key, data, date_created) VALUES(?, ?, ?)", [key, data, time.time()]
            )
            self._connection.commit()
        self._remove_expired_caches()

    def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        self._setup()
        assert self._connection

        self._remove_expired_caches()
        with self._lock:
            cursor = self._connection.execute("SELECT data FROM cache WHERE key = ?", [key])
            row = cursor.fetchone()
            if row is None:
                return None
            return tp.cast(bytes, row[0])

    def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        self._setup()
        assert self._connection

        with self._lock:
            self._connection.execute("DELETE FROM cache WHERE key = ?", [key])
            self._connection.commit()

    def close(self) -> None:  # pragma: no cover
        if self._connection is not None:
            self._connection.close()

    def _remove_expired_caches(self) -> None:
        assert self._connection
        if self._ttl is None:
            return

        with self._lock:
            self._connection.execute("DELETE FROM cache WHERE date_created + ? < ?", [self._ttl, time.time()])
            self._connection.commit()


class InMemoryStorage(BaseStorage):
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
        self._lock = Lock()

    def store(self, key: str, data: bytes) -> None:
        """
        Stores the serialized response in the cache.

        :param key: Hashed value of the request URL
        :type key: str
        :param data: Serialized response
        :type data: bytes
        """

        with self._lock:
            self._cache.put(key, (data, time.monotonic()))
        self._remove_expired_caches()

    def retrieve(self, key: str) -> tp.Optional[bytes]:
        """
        Retrieves the serialized response from the cache using its key.

        :param key: Hashed value of the request URL
        :type key: str
        :return: Serialized response
        :rtype: tp.Optional[bytes]
        """

        self._remove_expired_caches()
        with self._lock:
            try:
                data, _ = self._cache.get(key)
            except KeyError:
                return None
            return data

    def remove(self, key: str) -> None:
        """
        Removes the response from the cache.

        :param key: Hashed value of the request URL
        :type key: str
        """

        with self._lock:
            self._cache.remove_key(key)

    def _remove_expired_caches(self) -> None:
        if self._ttl is None:
            return

        with self._lock:
            keys_to_remove = set()

            for key in self._cache:
                _, created_at = self._cache.peek(key)

                if time.monotonic() - created_at > self._ttl:
                    keys_to_remove.add(key)

            for key in keys_to_remove:
                self._cache.remove_key(key)
