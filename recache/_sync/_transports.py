from __future__ import annotations

import logging
import types
import typing as tp

import httpx

from .._controller import CACHEABLE_METHODS, FROM_CACHE_HEADER, Controller, Freshness
from .._exceptions import MalformedEntryError, SerializationError
from .._headers import parse_cache_control
from .._ranges import ByteRange
from .._serializers import BaseSerializer, HTTPSerializer
from .._utils import copy_request, generate_key, get_safe_url
from ._storages import BaseStorage, FileStorage

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

__all__ = ("CacheTransport",)


def generate_504() -> httpx.Response:
    return httpx.Response(status_code=504, extensions={"from_cache": False})


def read_body(response: httpx.Response) -> bytes:
    assert isinstance(response.stream, tp.Iterable)
    try:
        return b"".join([chunk for chunk in response.stream])
    finally:
        response.close()


class CacheTransport(httpx.BaseTransport):
    """
    An HTTPX Transport that supports HTTP caching.

    :param transport: `Transport` that our class wraps in order to add an HTTP Cache layer on top of
    :type transport: httpx.BaseTransport
    :param storage: Storage that keeps the serialized responses, defaults to None
    :type storage: tp.Optional[BaseStorage], optional
    :param controller: Controller that makes the caching decisions, defaults to None
    :type controller: tp.Optional[Controller], optional
    :param serializer: Serializer that turns responses into bytes and back, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param key_generator: Callable that derives the storage key from the request, defaults to None
    :type key_generator: tp.Optional[tp.Callable[[httpx.Request], str]], optional
    :param mark_cached_responses: Whether responses served from the cache get the `X-From-Cache` header,
        defaults to True
    :type mark_cached_responses: bool, optional
    :param logger: Logger used instead of the `recache.transports` one, defaults to None
    :type logger: tp.Optional[logging.Logger], optional
    """

    def __init__(
        self,
        transport: httpx.BaseTransport,
        storage: tp.Optional[BaseStorage] = None,
        controller: tp.Optional[Controller] = None,
        serializer: tp.Optional[BaseSerializer] = None,
        key_generator: tp.Optional[tp.Callable[[httpx.Request], str]] = None,
        mark_cached_responses: bool = True,
        logger: tp.Optional[logging.Logger] = None,
    ) -> None:
        self._transport = transport
        self._storage = storage if storage is not None else FileStorage()
        self._controller = controller if controller is not None else Controller()
        self._serializer = serializer if serializer is not None else HTTPSerializer()
        self._key_generator = key_generator or generate_key
        self._mark_cached_responses = mark_cached_responses
        self._logger = logger if logger is not None else logging.getLogger("recache.transports")

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """
        Handles HTTP requests while also implementing HTTP caching.

        :param request: An HTTP request
        :type request: httpx.Request
        :return: An HTTP response
        :rtype: httpx.Response
        """

        if request.extensions.get("cache_disabled", False):
            headers = httpx.Headers(request.headers)
            headers["Cache-Control"] = ", ".join(["no-store", "no-cache", *request.headers.get_list("cache-control")])
            request = copy_request(request, headers=headers)

        key = self._key_generator(request)

        if request.method not in CACHEABLE_METHODS:
            self._logger.debug(
                (
                    f"Removing the stored response for the resource located at {get_safe_url(request.url)} "
                    f"since the request method ({request.method}) may modify it."
                )
            )
            self._storage.remove(key)
            return self._transport.handle_request(request)

        stored = self._retrieve(key, request)

        if stored is None:
            request_cache_control = parse_cache_control(request.headers.get_list("cache-control"))
            if request_cache_control.only_if_cached:
                self._logger.debug(
                    (
                        f"Responding with 504 for the resource located at {get_safe_url(request.url)} "
                        "since the request contains the only-if-cached directive and nothing usable is stored."
                    )
                )
                return generate_504()

            response = self._transport.handle_request(request)
            content = read_body(response)
            self._store(key, request, response, content)
            return self._from_network(response, content)

        stored_response, stored_content = stored
        freshness = self._controller.get_freshness(stored_response.headers, request.headers)

        if freshness is Freshness.FRESH:
            self._logger.debug(f"Using the stored response for the resource located at {get_safe_url(request.url)}.")
            return self._from_cache(request, stored_response, stored_content)

        if freshness is Freshness.STALE:
            request = self._controller.make_request_conditional(request, stored_response)

        try:
            response = self._transport.handle_request(request)
        except Exception:
            self._logger.debug(
                (
                    f"Removing the stored response for the resource located at {get_safe_url(request.url)} "
                    "since the validation request failed."
                )
            )
            self._storage.remove(key)
            raise

        content = read_body(response)

        if request.method == "GET" and response.status_code == 304:
            self._logger.debug(
                f"The stored response for the resource located at {get_safe_url(request.url)} was revalidated."
            )
            merged_response = self._controller.handle_validation_response(stored_response, response)
            self._store(key, request, merged_response, stored_content)
            return self._from_cache(request, merged_response, stored_content, revalidated=True)

        if response.status_code != 200:
            self._logger.debug(
                (
                    f"Removing the stored response for the resource located at {get_safe_url(request.url)} "
                    f"since the server responded with {response.status_code}."
                )
            )
            self._storage.remove(key)

        self._store(key, request, response, content)
        return self._from_network(response, content)

    def _retrieve(self, key: str, request: httpx.Request) -> tp.Optional[tp.Tuple[httpx.Response, bytes]]:
        data = self._storage.retrieve(key)
        if data is None:
            return None

        try:
            stored_response, stored_content = self._serializer.loads(data)
        except MalformedEntryError as exc:
            self._logger.warning(
                f"Ignoring the stored response for the resource located at {get_safe_url(request.url)}: {exc}"
            )
            return None

        if not self._controller.vary_matches(stored_response.headers, request.headers):
            self._logger.debug(
                (
                    f"Ignoring the stored response for the resource located at {get_safe_url(request.url)} "
                    "since the vary headers do not match."
                )
            )
            return None

        return stored_response, stored_content

    def _store(self, key: str, request: httpx.Request, response: httpx.Response, content: bytes) -> None:
        if request.method == "HEAD":
            # bodiless, it must not replace the stored GET response
            if self._controller.forbids_storing(request, response):
                self._storage.remove(key)
            return

        if not self._controller.can_store(request, response):
            self._storage.remove(key)
            return

        to_store = httpx.Response(
            status_code=response.status_code,
            headers=self._controller.snapshot_vary_headers(request, response.headers),
            stream=httpx.ByteStream(content),
            extensions=response.extensions,
        )

        try:
            data = self._serializer.dumps(response=to_store, content=content)
        except SerializationError as exc:
            self._logger.warning(
                f"Could not store the response for the resource located at {get_safe_url(request.url)}: {exc}"
            )
            return

        self._storage.store(key, data)

    def _from_network(self, response: httpx.Response, content: bytes) -> httpx.Response:
        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=httpx.ByteStream(content),
            extensions={**response.extensions, "from_cache": False},
        )

    def _from_cache(
        self,
        request: httpx.Request,
        response: httpx.Response,
        content: bytes,
        revalidated: bool = False,
    ) -> httpx.Response:
        status_code = response.status_code
        headers = httpx.Headers(response.headers)

        if request.method == "HEAD":
            content = b""
        elif "range" in request.headers and status_code == 200:
            byte_range = ByteRange.from_header(request.headers["range"], len(content))
            if byte_range is not None:
                status_code = 206
                headers["Content-Range"] = byte_range.content_range(len(content))
                content = byte_range.slice(content)
                headers["Content-Length"] = str(len(content))

        if self._mark_cached_responses:
            headers[FROM_CACHE_HEADER] = "1"

        extensions = {key: value for key, value in response.extensions.items() if key != "reason_phrase"}
        extensions.update(from_cache=True, revalidated=revalidated)

        return httpx.Response(
            status_code=status_code,
            headers=headers,
            stream=httpx.ByteStream(content),
            extensions=extensions,
        )

    def close(self) -> None:
        self._storage.close()
        self._transport.close()

    def __enter__(self) -> "Self":
        return self

    def __exit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        self.close()
