import httpx
import pytest
from fastapi.testclient import TestClient

from spotify_relay import Settings, create_app


class FakeSpotify:
    """
    Stands in for accounts.spotify.com and api.spotify.com.
    Routes map (method, path) to (status, json_body) or to an exception to raise.
    Every request that reaches it is recorded.
    """

    def __init__(self):
        self.requests = []
        self.routes = {}

    def reply(self, method, path, status=200, body=None):
        self.routes[(method, path)] = (status, body)

    def fail(self, method, path, exc):
        self.routes[(method, path)] = exc

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": {"status": 404, "message": "Not found"}})
        if isinstance(route, Exception):
            raise route
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


@pytest.fixture
def fake_spotify():
    return FakeSpotify()


@pytest.fixture
def settings():
    return Settings(client_id="my-client", client_secret="my-secret")


@pytest.fixture
def fragment_settings():
    return Settings(client_id="my-client", client_secret="my-secret", token_delivery="fragment")


def _client(settings, fake_spotify):
    app = create_app(settings, transport=httpx.MockTransport(fake_spotify))
    # https so the Secure cookies set by the app are sent back
    return TestClient(app, base_url="https://testserver")


@pytest.fixture
def client(settings, fake_spotify):
    return _client(settings, fake_spotify)


@pytest.fixture
def fragment_client(fragment_settings, fake_spotify):
    return _client(fragment_settings, fake_spotify)


def set_cookie_headers(response):
    return response.headers.get_list("set-cookie")


def find_set_cookie(response, name):
    for header in set_cookie_headers(response):
        if header.startswith(f"{name}="):
            return header
    return None
