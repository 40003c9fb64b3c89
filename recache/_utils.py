from __future__ import annotations

import hashlib
import math
import re
import time
import typing as tp
from email.utils import mktime_tz, parsedate_tz
from pathlib import Path

import httpx

HEADERS_ENCODING = "iso-8859-1"

__all__ = (
    "BaseClock",
    "Clock",
    "canonical_header_key",
    "copy_request",
    "ensure_cache_dict",
    "generate_key",
    "get_safe_url",
    "normalized_url",
    "parse_date",
    "parse_seconds",
)


class BaseClock:
    def now(self) -> float:
        raise NotImplementedError()


class Clock(BaseClock):
    def now(self) -> float:
        return time.time()


RFC_1123_DATE = re.compile(r"[A-Z][a-z]{2}, \d{2} [A-Z][a-z]{2} \d{4} \d{2}:\d{2}:\d{2} GMT")


def parse_date(date: str) -> tp.Optional[float]:
    """
    Parses an RFC 1123 date such as `Mon, 25 Aug 2015 12:00:00 GMT`.

    Obsolete forms (RFC 850, asctime) and numeric zones are reported as `None`.
    """
    if RFC_1123_DATE.fullmatch(date.strip()) is None:
        return None
    parsed = parsedate_tz(date)
    if parsed is None:
        return None
    return float(mktime_tz(parsed))


def parse_seconds(value: str) -> tp.Optional[float]:
    """
    Parses a directive value expressed in seconds.

    Integers and decimals are accepted, anything else (including
    infinities and NaN) is reported as `None`.
    """
    try:
        seconds = float(value)
    except ValueError:
        return None
    if math.isnan(seconds) or math.isinf(seconds):
        return None
    return seconds


def canonical_header_key(name: str) -> str:
    """
    Convert a header name to its canonical form.

    Examples:
        >>> canonical_header_key("accept-language")
        'Accept-Language'
        >>> canonical_header_key("X-REQUEST-ID")
        'X-Request-Id'
    """
    return "-".join(part.capitalize() for part in name.strip().split("-"))


def normalized_url(url: httpx.URL) -> str:
    netloc = url.netloc.decode("ascii")
    path = url.raw_path.decode("ascii")
    return f"{url.scheme}://{netloc}{path}"


def get_safe_url(url: httpx.URL) -> str:
    port = f":{url.port}" if url.port is not None else ""
    return f"{url.scheme}://{url.host}{port}{url.path}"


def generate_key(request: httpx.Request) -> str:
    """
    Generates a stable key for the request.

    Only the normalized URL takes part in the key, so requests
    with different methods to the same URL share their key.
    """
    encoded_url = normalized_url(request.url).encode("ascii")

    try:
        key = hashlib.blake2b(digest_size=16)
    except AttributeError:
        # blake2b is not available in FIPS mode
        key = hashlib.sha256()

    key.update(encoded_url)
    return key.hexdigest()


def copy_request(request: httpx.Request, headers: tp.Optional[httpx.Headers] = None) -> httpx.Request:
    return httpx.Request(
        method=request.method,
        url=request.url,
        headers=headers if headers is not None else httpx.Headers(request.headers),
        stream=request.stream,
        extensions=request.extensions,
    )


def ensure_cache_dict(base_path: tp.Optional[Path] = None) -> Path:
    _base_path = Path(base_path) if base_path is not None else Path(".cache/recache")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by recache\n*")
    return _base_path
