import typing as tp

import h11
import httpx

from ._exceptions import MalformedEntryError, SerializationError

HEADERS_ENCODING = "iso-8859-1"
BODYLESS_STATUS_CODES = (204, 304)
MAX_INCOMPLETE_EVENT_SIZE = 16 * 1024

__all__ = ("BaseSerializer", "HTTPSerializer")


def has_body(status_code: int) -> bool:
    return status_code >= 200 and status_code not in BODYLESS_STATUS_CODES


class BaseSerializer:
    def dumps(self, response: httpx.Response, content: bytes) -> bytes:
        raise NotImplementedError()

    def loads(self, data: bytes) -> tp.Tuple[httpx.Response, bytes]:
        raise NotImplementedError()


class HTTPSerializer(BaseSerializer):
    """
    Stores responses in the HTTP/1.1 wire format.

    Whatever this serializer produces can be parsed by any HTTP/1.1
    implementation: a status line, the header block terminated by an
    empty line, and the body framed by `Content-Length`.
    """

    def dumps(self, response: httpx.Response, content: bytes) -> bytes:
        """
        Dumps the HTTP response.

        The body is already decoded from the transfer coding, so
        `Transfer-Encoding` is dropped and `Content-Length` rewritten
        to the actual body length.

        :param response: An HTTP response
        :type response: httpx.Response
        :param content: The raw body of the response
        :type content: bytes
        :raises SerializationError: When the response cannot be represented on the wire
        :return: Serialized response
        :rtype: bytes
        """
        status_code = response.status_code
        if not 100 <= status_code <= 999:
            raise SerializationError(f"The status code {status_code} cannot be serialized.")

        reason_phrase = response.extensions.get("reason_phrase") or httpx.codes.get_reason_phrase(status_code)
        if isinstance(reason_phrase, str):
            reason_phrase = reason_phrase.encode(HEADERS_ENCODING, errors="replace")

        headers: tp.List[tp.Tuple[bytes, bytes]] = []
        content_length = str(len(content)).encode("ascii")
        content_length_written = False

        for key, value in response.headers.raw:
            lower_key = key.lower()
            if lower_key == b"transfer-encoding":
                continue
            if lower_key == b"content-length" and has_body(status_code):
                if content_length_written:
                    continue
                value = content_length
                content_length_written = True
            headers.append((key, value))

        if has_body(status_code) and not content_length_written:
            headers.append((b"Content-Length", content_length))

        lines = [b"HTTP/1.1 %d %s" % (status_code, reason_phrase)]
        for key, value in headers:
            if any(char in key + value for char in (b"\r", b"\n")) or b":" in key:
                raise SerializationError(f"The header {key!r} cannot be serialized.")
            lines.append(key + b": " + value)

        return b"\r\n".join(lines) + b"\r\n\r\n" + (content if has_body(status_code) else b"")

    def loads(self, data: bytes) -> tp.Tuple[httpx.Response, bytes]:
        """
        Loads the HTTP response from serialized data.

        :param data: Serialized data
        :type data: bytes
        :raises MalformedEntryError: When the data is not a complete HTTP/1.1 response
        :return: HTTP response and its raw body
        :rtype: tp.Tuple[httpx.Response, bytes]
        """
        connection = h11.Connection(
            our_role=h11.CLIENT,
            max_incomplete_event_size=max(len(data), MAX_INCOMPLETE_EVENT_SIZE),
        )
        # h11 only parses a response after its request has been sent.
        connection.send(h11.Request(method="GET", target="/", headers=[("Host", "cache")]))
        connection.send(h11.EndOfMessage())
        connection.receive_data(data)
        connection.receive_data(b"")

        head: tp.Optional[h11.Response] = None
        chunks: tp.List[bytes] = []

        try:
            while True:
                event = connection.next_event()
                if isinstance(event, h11.Response):
                    head = event
                elif isinstance(event, h11.Data):
                    chunks.append(bytes(event.data))
                elif isinstance(event, h11.EndOfMessage):
                    break
                else:
                    raise MalformedEntryError(f"Unexpected {event!r} while reading the stored response.")
        except h11.RemoteProtocolError as exc:
            raise MalformedEntryError(f"Could not parse the stored response: {exc}") from exc

        assert head is not None
        content = b"".join(chunks)

        response = httpx.Response(
            status_code=head.status_code,
            headers=list(head.headers.raw_items()),
            stream=httpx.ByteStream(content),
            extensions={
                "http_version": b"HTTP/" + head.http_version,
                "reason_phrase": head.reason,
            },
        )
        return response, content
