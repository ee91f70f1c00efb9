import json
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from mcp_neo4j_rest.connection import Neo4jConnection
from mcp_neo4j_rest.neo4j_rest import Neo4jRest

DB_PATH = "/db/data"


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: dict[str, str]
    headers: dict[str, str]
    text: str

    @property
    def json(self) -> Any:
        return json.loads(self.text) if self.text else None


@dataclass
class StubbedResponse:
    status: int = 200
    body: Any = None
    raw: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)


class FakeNeo4j:
    """
    A scripted Neo4j REST server.

    Responses are queued per (method, path), paths being relative to /db/data,
    and consumed in order. Unscripted requests get a 404. Every request is recorded.
    """

    def __init__(self):
        self.base_url = ""
        self.requests: list[RecordedRequest] = []
        self._responses: dict[tuple[str, str], deque] = defaultdict(deque)
        self.app = web.Application()
        self.app.router.add_route("*", "/{tail:.*}", self._handle)

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Any = None,
        raw: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._responses[(method, path)].append(
            StubbedResponse(status, body, raw, headers or {})
        )

    def requests_to(self, method: str, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    async def _handle(self, request: web.Request) -> web.Response:
        path = request.path
        if path.startswith(DB_PATH):
            path = path[len(DB_PATH):] or "/"
        self.requests.append(
            RecordedRequest(
                method=request.method,
                path=path,
                query=dict(request.query),
                headers=dict(request.headers),
                text=await request.text(),
            )
        )

        queue = self._responses.get((request.method, path))
        if not queue:
            return web.json_response({"message": f"no stub for {request.method} {path}"}, status=404)
        stub = queue.popleft()
        text = stub.raw if stub.raw is not None else (
            json.dumps(stub.body) if stub.body is not None else None
        )
        if text is None:
            return web.Response(status=stub.status, headers=stub.headers)
        return web.Response(
            status=stub.status,
            text=text,
            content_type="application/json",
            headers=stub.headers,
        )

    # Representations

    def uri(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def service_root(self, version: Optional[str] = "2.0.0") -> dict[str, Any]:
        root = {
            "extensions": {},
            "node": self.uri("/node"),
            "node_index": self.uri("/index/node"),
            "relationship_index": self.uri("/index/relationship"),
            "relationship_types": self.uri("/relationship/types"),
            "batch": self.uri("/batch"),
            "cypher": self.uri("/cypher"),
            "extensions_info": self.uri("/ext"),
        }
        if version is not None:
            root["neo4j_version"] = version
        return root

    def node(
        self,
        node_id: int,
        data: Optional[dict[str, Any]] = None,
        labels: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        uri = self.uri(f"/node/{node_id}")
        return {
            "self": uri,
            "data": data or {},
            "metadata": {"id": node_id, "labels": labels or []},
            "properties": f"{uri}/properties",
            "property": f"{uri}/properties/{{key}}",
            "all_relationships": f"{uri}/relationships/all",
            "incoming_relationships": f"{uri}/relationships/in",
            "outgoing_relationships": f"{uri}/relationships/out",
            "all_typed_relationships": f"{uri}/relationships/all/{{-list|&|types}}",
            "incoming_typed_relationships": f"{uri}/relationships/in/{{-list|&|types}}",
            "outgoing_typed_relationships": f"{uri}/relationships/out/{{-list|&|types}}",
            "create_relationship": f"{uri}/relationships",
            "labels": f"{uri}/labels",
            "traverse": f"{uri}/traverse/{{returnType}}",
            "paged_traverse": f"{uri}/paged/traverse/{{returnType}}{{?pageSize,leaseTime}}",
        }

    def relationship(
        self,
        relationship_id: int,
        start: int,
        end: int,
        type: str,
        data: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        uri = self.uri(f"/relationship/{relationship_id}")
        return {
            "self": uri,
            "start": self.uri(f"/node/{start}"),
            "end": self.uri(f"/node/{end}"),
            "type": type,
            "data": data or {},
            "metadata": {"id": relationship_id, "type": type},
            "properties": f"{uri}/properties",
            "property": f"{uri}/properties/{{key}}",
        }


@pytest_asyncio.fixture
async def fake_neo4j():
    fake = FakeNeo4j()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = str(server.make_url(DB_PATH))
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def connect(fake_neo4j):
    """Factory connecting a Neo4jConnection to the fake server, with the given server version."""
    connections = []

    async def _connect(version: Optional[str] = "2.0.0", **kwargs) -> Neo4jConnection:
        fake_neo4j.add("GET", "/", body=fake_neo4j.service_root(version))
        connection = Neo4jConnection(fake_neo4j.base_url, **kwargs)
        await connection.connect()
        connections.append(connection)
        return connection

    yield _connect

    for connection in connections:
        await connection.disconnect()


@pytest_asyncio.fixture
async def connection(connect):
    return await connect()


@pytest_asyncio.fixture
async def rest(connection):
    return Neo4jRest(connection)
