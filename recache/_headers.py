import string
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from ._utils import parse_seconds

## Grammar

tchar = "!#$%&'*+-.^_`|~0123456789" + string.ascii_letters

__all__ = (
    "CacheControl",
    "Vary",
    "parse_cache_control",
)


def strip_ows_around(text: str) -> str:
    return text.strip(" \t")


def unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


def parse_cache_control(cache_control_values: Iterable[str]) -> "CacheControl":
    """
    Parses the values of one or more `Cache-Control` headers.

    The parser is lenient: blank directives and directives whose
    name is not a valid token are skipped instead of failing the
    whole header.
    """

    directives: Dict[str, str] = {}

    for cache_control_value in cache_control_values:
        for directive in cache_control_value.split(","):
            directive = strip_ows_around(directive)

            if not directive:
                continue

            key, _, value = directive.partition("=")
            key = strip_ows_around(key).lower()

            if not key or any(key_char not in tchar for key_char in key):
                continue

            directives[key] = unquote(strip_ows_around(value))
    return CacheControl(directives)


class Vary:
    def __init__(self, values: List[str]) -> None:
        self.values = values

    @classmethod
    def from_value(cls, vary_values: Iterable[str]) -> "Vary":
        values = []

        for vary_value in vary_values:
            for field_name in vary_value.split(","):
                field_name = field_name.strip()
                if field_name:
                    values.append(field_name)
        return Vary(values)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {', '.join(self.values)}>"


class CacheControl(Mapping[str, str]):
    """
    Directives of a single `Cache-Control` header set.

    Maps lower-cased directive names to their raw values; directives
    given without a value map to an empty string.
    """

    def __init__(self, directives: Optional[Mapping[str, str]] = None) -> None:
        self._directives = dict(directives or {})

    @property
    def no_cache(self) -> bool:
        return "no-cache" in self._directives

    @property
    def no_store(self) -> bool:
        return "no-store" in self._directives

    @property
    def only_if_cached(self) -> bool:
        return "only-if-cached" in self._directives

    def seconds(self, directive: str) -> Optional[float]:
        value = self._directives.get(directive)
        if value is None:
            return None
        return parse_seconds(value)

    def __getitem__(self, key: str) -> str:
        return self._directives[key.lower()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._directives

    def __iter__(self) -> Iterator[str]:
        return iter(self._directives)

    def __len__(self) -> int:
        return len(self._directives)

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value}" if value else key for key, value in self._directives.items())
        return f"<{type(self).__name__} {fields}>"
