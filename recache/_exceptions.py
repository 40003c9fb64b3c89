__all__ = (
    "CacheError",
    "MissingDateError",
    "MalformedEntryError",
    "SerializationError",
    "InvalidRangeError",
)


class CacheError(Exception): ...


class MissingDateError(CacheError): ...


class MalformedEntryError(CacheError): ...


class SerializationError(CacheError): ...


class InvalidRangeError(CacheError): ...
