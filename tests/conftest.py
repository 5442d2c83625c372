import json

import httpx
import pytest

from hyperbolic_bot.dispatcher import RequestDispatcher
from hyperbolic_bot.hyperbolic import HyperbolicClient

API_URL = "https://api.test/v1"


class FakeHyperbolic:
    """Records upstream requests and answers them with a canned response."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = {}
        self.error = None
        self.raw_text = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.raw_text is not None:
            return httpx.Response(self.status_code, text=self.raw_text)
        return httpx.Response(self.status_code, json=self.body)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def upstream():
    return FakeHyperbolic()


@pytest.fixture
async def client(upstream):
    client = HyperbolicClient(API_URL, transport=httpx.MockTransport(upstream.handler))
    yield client
    await client.aclose()


@pytest.fixture
def dispatcher(client):
    return RequestDispatcher(client)
