# Shared test doubles: a scripted ModForge API behind httpx.MockTransport.
import asyncio

import httpx

from services.api_client import ModForgeApiClient
from schemas.requests import ModFile

API_ROOT = "/api/v1"


def json_response(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def mod_file(name: str = "mod.jar", size: int = 16, content_type: str = "application/java-archive") -> ModFile:
    return ModFile(file_name=name, content=b"x" * size, content_type=content_type)


async def no_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


class ScriptedApi:
    """Answers each (method, path) from a queue of canned responses; the last one repeats."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}

    def add(self, method: str, path: str, *responses) -> "ScriptedApi":
        self._routes.setdefault((method, API_ROOT + path), []).extend(responses)
        return self

    def gate(self, method: str, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(method, API_ROOT + path)] = event
        return event

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, API_ROOT + path))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)
        self.requests.append(request)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        queue = self._routes.get(key)
        if not queue:
            return json_response(404, {"error": f"no route for {key[0]} {key[1]}"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def client(self, **kwargs) -> ModForgeApiClient:
        return ModForgeApiClient(
            base_url="http://api.test",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
