import enum
import logging
import typing as tp

import httpx

from ._exceptions import MissingDateError
from ._headers import CacheControl, Vary, parse_cache_control
from ._utils import HEADERS_ENCODING, BaseClock, Clock, canonical_header_key, copy_request, get_safe_url, parse_date


CACHEABLE_METHODS = ("GET", "HEAD")
STORABLE_METHODS = ("GET",)
UNSTORABLE_STATUS_CODES = (206, 304)
HOP_BY_HOP_HEADERS = frozenset(
    (
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    )
)
FROM_CACHE_HEADER = "X-From-Cache"
VARIED_HEADER_PREFIX = "X-Varied-"

__all__ = (
    "CACHEABLE_METHODS",
    "Controller",
    "Freshness",
    "get_end_to_end_headers",
)


class Freshness(enum.Enum):
    FRESH = "fresh"
    """The stored response can be used without contacting the server."""

    STALE = "stale"
    """The stored response must be validated before it is used."""

    TRANSPARENT = "transparent"
    """The stored response must not be used to fulfil the request."""


def get_date(headers: httpx.Headers) -> float:
    date = headers.get("date")
    if date is None:
        raise MissingDateError("The response does not contain the Date header.")

    timestamp = parse_date(date)
    if timestamp is None:
        raise MissingDateError(f"Could not parse the Date header {date!r}.")
    return timestamp


def get_freshness_lifetime(headers: httpx.Headers, cache_control: CacheControl, date: float) -> float:
    # If a response includes both an Expires header and a max-age directive,
    # the max-age directive overrides the Expires header, even if the Expires header is more restrictive.
    if "max-age" in cache_control:
        return cache_control.seconds("max-age") or 0.0

    expires = headers.get("expires")
    if expires is not None:
        expires_timestamp = parse_date(expires)
        if expires_timestamp is None:
            return 0.0
        return expires_timestamp - date
    return 0.0


def get_end_to_end_headers(headers: httpx.Headers) -> tp.Set[str]:
    """
    Returns the lower-cased names of the end-to-end headers.

    Besides the fixed hop-by-hop headers, every header listed
    in the `Connection` header is hop-by-hop as well.
    """
    hop_by_hop = set(HOP_BY_HOP_HEADERS)

    for connection_value in headers.get_list("connection"):
        for extra in connection_value.split(","):
            extra = extra.strip().lower()
            if extra:
                hop_by_hop.add(extra)

    return {key for key in headers.keys() if key not in hop_by_hop}


def get_updated_headers(
    stored_response_headers: httpx.Headers,
    new_response_headers: httpx.Headers,
) -> httpx.Headers:
    # The body of the stored response is kept, so its Content-Length must be kept as well.
    replaced = get_end_to_end_headers(new_response_headers) - {"content-length"}
    updated_headers: tp.List[tp.Tuple[bytes, bytes]] = []

    checked = set()

    for key, value in stored_response_headers.raw:
        lower_key = key.decode(HEADERS_ENCODING).lower()

        if lower_key not in replaced:
            updated_headers.append((key, value))
        elif lower_key not in checked:
            checked.add(lower_key)
            updated_headers.extend(
                (key, new_value) for new_key, new_value in new_response_headers.raw if new_key.lower() == key.lower()
            )

    for key, value in new_response_headers.raw:
        lower_key = key.decode(HEADERS_ENCODING).lower()
        if lower_key in replaced and lower_key not in checked:
            updated_headers.append((key, value))

    return httpx.Headers(updated_headers)


class Controller:
    """
    Makes the caching decisions for a private cache.

    :param clock: Source of the current time used for age calculations, defaults to None
    :type clock: tp.Optional[BaseClock], optional
    :param logger: Logger used instead of the `recache.controller` one, defaults to None
    :type logger: tp.Optional[logging.Logger], optional
    """

    def __init__(
        self,
        clock: tp.Optional[BaseClock] = None,
        logger: tp.Optional[logging.Logger] = None,
    ) -> None:
        self._clock = clock if clock is not None else Clock()
        self._logger = logger if logger is not None else logging.getLogger("recache.controller")

    def get_freshness(self, response_headers: httpx.Headers, request_headers: httpx.Headers) -> Freshness:
        """
        Classifies the stored response as fresh, stale or transparent.

        Because this is only a private cache, `public` and `private`
        aren't significant. Similarly, `s-maxage` isn't used.
        """
        response_cache_control = parse_cache_control(response_headers.get_list("cache-control"))
        request_cache_control = parse_cache_control(request_headers.get_list("cache-control"))

        if request_cache_control.no_cache:
            self._logger.debug("Bypassing the stored response since the request contains the no-cache directive.")
            return Freshness.TRANSPARENT

        if response_cache_control.no_cache:
            self._logger.debug(
                "Considering the stored response as stale since the response contains the no-cache directive."
            )
            return Freshness.STALE

        if request_cache_control.only_if_cached:
            self._logger.debug(
                "Considering the stored response as fresh since the request contains the only-if-cached directive."
            )
            return Freshness.FRESH

        try:
            date = get_date(response_headers)
        except MissingDateError as exc:
            self._logger.debug(f"Considering the stored response as stale since its age is unknown: {exc}")
            return Freshness.STALE

        current_age = self._clock.now() - date
        lifetime = get_freshness_lifetime(response_headers, response_cache_control, date)

        if "max-age" in request_cache_control:
            # the client is willing to accept a response whose age is no greater than the specified time in seconds
            lifetime = request_cache_control.seconds("max-age") or 0.0

        min_fresh = request_cache_control.seconds("min-fresh")
        if min_fresh is not None:
            # the client wants a response that will still be fresh for at least the specified number of seconds.
            current_age += min_fresh

        if "max-stale" in request_cache_control:
            # Without a value the client accepts a stale response of any age.
            if not request_cache_control["max-stale"]:
                self._logger.debug(
                    "Considering the stored response as fresh since the request accepts stale responses of any age."
                )
                return Freshness.FRESH

            max_stale = request_cache_control.seconds("max-stale")
            if max_stale is not None:
                current_age -= max_stale

        if lifetime > current_age:
            self._logger.debug(
                f"Considering the stored response as fresh (lifetime {lifetime:g}s, age {current_age:g}s)."
            )
            return Freshness.FRESH

        self._logger.debug(f"Considering the stored response as stale (lifetime {lifetime:g}s, age {current_age:g}s).")
        return Freshness.STALE

    def vary_matches(self, stored_response_headers: httpx.Headers, request_headers: httpx.Headers) -> bool:
        """
        Determines whether the request selects the same representation as the stored response.

        The request values of every header nominated by `Vary` are compared
        with the `X-Varied-*` snapshots saved next to the stored response.
        """
        vary = Vary.from_value(stored_response_headers.get_list("vary"))

        for vary_header in vary.values:
            if vary_header == "*":
                self._logger.debug("The stored response varies on every request header (Vary: *).")
                return False

            header = canonical_header_key(vary_header)
            request_value = request_headers.get(header, "")
            stored_value = stored_response_headers.get(VARIED_HEADER_PREFIX + header, "")

            if request_value != stored_value:
                self._logger.debug(
                    f"The stored response does not match the request since the {header!r} header differs."
                )
                return False

        return True

    def snapshot_vary_headers(self, request: httpx.Request, response_headers: httpx.Headers) -> httpx.Headers:
        """
        Returns a copy of the response headers with the `X-Varied-*` snapshots added.
        """
        headers = httpx.Headers(response_headers)

        for vary_header in Vary.from_value(response_headers.get_list("vary")).values:
            header = canonical_header_key(vary_header)
            request_value = request.headers.get(header, "")
            if request_value:
                headers[VARIED_HEADER_PREFIX + header] = request_value

        return headers

    def can_store(self, request: httpx.Request, response: httpx.Response) -> bool:
        """
        Determines whether the response may be written to the storage.
        """
        if request.method not in STORABLE_METHODS:
            self._logger.debug(
                (
                    f"Considering the resource located at {get_safe_url(request.url)} "
                    f"as not storable since the request method ({request.method}) is not stored."
                )
            )
            return False

        if response.status_code in UNSTORABLE_STATUS_CODES:
            self._logger.debug(
                (
                    f"Considering the resource located at {get_safe_url(request.url)} "
                    f"as not storable since its status code ({response.status_code}) "
                    "does not carry the complete representation."
                )
            )
            return False

        return not self.forbids_storing(request, response)

    def forbids_storing(self, request: httpx.Request, response: httpx.Response) -> bool:
        """
        Determines whether the request or the response carries the `no-store` directive.
        """
        request_cache_control = parse_cache_control(request.headers.get_list("cache-control"))
        if request_cache_control.no_store:
            self._logger.debug(
                (
                    f"Considering the resource located at {get_safe_url(request.url)} "
                    "as not storable since the request contains the no-store directive."
                )
            )
            return True

        response_cache_control = parse_cache_control(response.headers.get_list("cache-control"))
        if response_cache_control.no_store:
            self._logger.debug(
                (
                    f"Considering the resource located at {get_safe_url(request.url)} "
                    "as not storable since the response contains the no-store directive."
                )
            )
            return True

        return False

    def make_request_conditional(self, request: httpx.Request, response: httpx.Response) -> httpx.Request:
        """
        Returns a copy of the request with the precondition headers needed for validation.

        The "ETag" and "Last-Modified" headers of the stored response are used,
        unless the caller already set the matching precondition header.
        """
        headers = httpx.Headers(request.headers)

        etag = response.headers.get("etag")
        if etag and "if-none-match" not in headers:
            self._logger.debug(
                (
                    f"Adding the 'If-None-Match' header with the value of '{etag}' "
                    f"to the request for the resource located at {get_safe_url(request.url)}."
                )
            )
            headers["If-None-Match"] = etag

        last_modified = response.headers.get("last-modified")
        if last_modified and "if-modified-since" not in headers:
            self._logger.debug(
                (
                    f"Adding the 'If-Modified-Since' header with the value of '{last_modified}' "
                    f"to the request for the resource located at {get_safe_url(request.url)}."
                )
            )
            headers["If-Modified-Since"] = last_modified

        return copy_request(request, headers=headers)

    def handle_validation_response(self, old_response: httpx.Response, new_response: httpx.Response) -> httpx.Response:
        """
        Handles incoming validation response.

        If it is a 304 response, the end-to-end headers of the new response
        are copied onto the stored one, which is returned with a 200 status.
        Any other response is returned as is.
        """
        if new_response.status_code != 304:
            return new_response

        return httpx.Response(
            status_code=200,
            headers=get_updated_headers(old_response.headers, new_response.headers),
            stream=old_response.stream,
            extensions={key: value for key, value in old_response.extensions.items() if key != "reason_phrase"},
        )
