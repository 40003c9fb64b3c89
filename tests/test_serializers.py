import httpx
import pytest

from recache import HTTPSerializer, MalformedEntryError, SerializationError


def test_http_serializer_dumps():
    response = httpx.Response(
        200,
        headers=[
            (b"Content-Type", b"application/json"),
            (b"Transfer-Encoding", b"chunked"),
        ],
        stream=httpx.ByteStream(b"test"),
    )

    data = HTTPSerializer().dumps(response=response, content=b"test")

    assert data == (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: 4\r\n"
        b"\r\n"
        b"test"
    )


def test_http_serializer_rewrites_content_length():
    response = httpx.Response(
        200,
        headers=[(b"Content-Length", b"100"), (b"Content-Length", b"100")],
        stream=httpx.ByteStream(b"test"),
        extensions={"reason_phrase": b"Fine"},
    )

    data = HTTPSerializer().dumps(response=response, content=b"test")

    assert data == b"HTTP/1.1 200 Fine\r\nContent-Length: 4\r\n\r\ntest"


def test_http_serializer_bodyless_status():
    response = httpx.Response(304, headers=[(b"ETag", b'"abc"')], stream=httpx.ByteStream(b""))

    data = HTTPSerializer().dumps(response=response, content=b"")

    assert data == b'HTTP/1.1 304 Not Modified\r\nETag: "abc"\r\n\r\n'


def test_http_serializer_loads():
    data = (
        b"HTTP/1.1 404 Missing\r\n"
        b"Content-Type: text/plain\r\n"
        b"X-Varied-Accept: text/html\r\n"
        b"Content-Length: 9\r\n"
        b"\r\n"
        b"not found"
    )

    response, content = HTTPSerializer().loads(data)

    assert response.status_code == 404
    assert response.reason_phrase == "Missing"
    assert response.headers["Content-Type"] == "text/plain"
    assert response.headers["X-Varied-Accept"] == "text/html"
    assert response.extensions["http_version"] == b"HTTP/1.1"
    assert content == b"not found"
    assert response.read() == b"not found"


def test_http_serializer_keeps_the_raw_body():
    gzipped = b"\x1f\x8b\x08\x00\x00\x00\x00\x00\x00\x03+I-.\x01\x00\x0c~\x7f\xd8\x04\x00\x00\x00"
    response = httpx.Response(
        200,
        headers=[(b"Content-Encoding", b"gzip"), (b"Set-Cookie", b"a=1"), (b"Set-Cookie", b"b=2")],
        stream=httpx.ByteStream(gzipped),
    )
    serializer = HTTPSerializer()

    loaded_response, content = serializer.loads(serializer.dumps(response=response, content=gzipped))

    assert content == gzipped
    assert loaded_response.headers.get_list("set-cookie") == ["a=1", "b=2"]
    assert loaded_response.read() == b"test"


def test_http_serializer_loads_large_header_block():
    cookie = "a" * (32 * 1024)
    response = httpx.Response(200, headers=[(b"Set-Cookie", cookie.encode())], stream=httpx.ByteStream(b"test"))
    serializer = HTTPSerializer()

    loaded_response, content = serializer.loads(serializer.dumps(response=response, content=b"test"))

    assert loaded_response.headers["Set-Cookie"] == cookie
    assert content == b"test"


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"garbage",
        b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nshort",
        b"HTTP/1.1 200 OK\r\nBroken header\r\n\r\n",
        b"HTTP/1.1 100 Continue\r\n\r\n",
    ],
)
def test_http_serializer_malformed_data(data):
    with pytest.raises(MalformedEntryError):
        HTTPSerializer().loads(data)


def test_http_serializer_rejects_invalid_headers():
    response = httpx.Response(200, stream=httpx.ByteStream(b""))
    response.headers["X-Bad"] = "line\r\nbreak"

    with pytest.raises(SerializationError):
        HTTPSerializer().dumps(response=response, content=b"")
