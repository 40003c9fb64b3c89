import typing as tp

import httpx

__all__ = ("MockTransport",)


class MockTransport(httpx.BaseTransport):
    """
    Replies with the queued responses in order and remembers every request it received.
    """

    def __init__(self, responses: tp.Optional[tp.List[httpx.Response]] = None) -> None:
        self.mocked_responses: tp.List[httpx.Response] = list(responses or [])
        self.requests: tp.List[httpx.Request] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.mocked_responses:
            raise httpx.ConnectError("No mocked responses left.", request=request)
        return self.mocked_responses.pop(0)

    def add_responses(self, responses: tp.List[httpx.Response]) -> None:
        self.mocked_responses.extend(responses)
