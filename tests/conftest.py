"""Shared fixtures: an in-memory Metasys server behind httpx.MockTransport."""

from collections.abc import Callable

import httpx
import pytest

from metasys_serverkit.restapi import MetasysServerApi

Handler = Callable[[httpx.Request], httpx.Response]


class FakeMetasysServer:
    """Serves canned responses and records every request it receives.

    Unknown paths answer 404, like the real server does for empty
    collections.
    """

    def __init__(self, token: str = "mytoken"):
        self.token = token
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Handler] = {
            "/api/v1/login": self._login,
        }

    def _login(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"accessToken": self.token, "expires": "2030-01-01T00:00:00Z"},
        )

    def route(self, path: str, handler: Handler) -> None:
        self.routes[path] = handler

    def serve_json(self, path: str, body, status_code: int = 200) -> None:
        self.route(path, lambda request: httpx.Response(status_code, json=body))

    def serve_pages(self, path: str, pages: list) -> None:
        """Serve ``pages`` one at a time through ``?page=N`` next links.

        A page is a list of items, or an int status code to fail with.
        """

        def respond(request: httpx.Request) -> httpx.Response:
            index = int(request.url.params.get("page", "0"))
            page = pages[index]
            if isinstance(page, int):
                return httpx.Response(page, json={"message": "failed"})
            body: dict = {"items": page, "total": sum(len(p) for p in pages if isinstance(p, list))}
            if index + 1 < len(pages):
                body["next"] = f"https://{request.url.host}{path}?page={index + 1}"
            return httpx.Response(200, json=body)

        self.route(path, respond)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self.routes.get(request.url.path)
        if respond is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return respond(request)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def server() -> FakeMetasysServer:
    return FakeMetasysServer()


@pytest.fixture
def transport(server: FakeMetasysServer) -> httpx.MockTransport:
    return httpx.MockTransport(server.handler)


@pytest.fixture
async def api(server: FakeMetasysServer, transport: httpx.MockTransport, anyio_backend):
    """MetasysServerApi logged into the fake server, with the login request cleared."""
    client = MetasysServerApi(transport)
    assert await client.login("meta", "pass", "host")
    server.requests.clear()
    yield client
    await client.aclose()
