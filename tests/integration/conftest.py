import os

import pytest
import pytest_asyncio

from mcp_neo4j_rest.connection import Neo4jConnection
from mcp_neo4j_rest.neo4j_rest import Neo4jRest
from mcp_neo4j_rest.server import create_mcp_server


@pytest.fixture(scope="session")
def db_url():
    url = os.getenv("NEO4J_URL")
    if not url:
        pytest.skip("NEO4J_URL must be set to run the integration tests")
    return url


@pytest_asyncio.fixture(scope="function")
async def connection(db_url):
    connection = Neo4jConnection(
        base_uri=db_url,
        user=os.getenv("NEO4J_USERNAME") or None,
        password=os.getenv("NEO4J_PASSWORD") or None,
    )
    await connection.connect()
    yield connection
    await connection.disconnect()


@pytest_asyncio.fixture(scope="function")
async def rest(connection):
    return Neo4jRest(connection)


@pytest_asyncio.fixture(scope="function")
async def mcp_server(rest):
    return create_mcp_server(rest)


@pytest_asyncio.fixture(scope="function")
async def init_data(rest):
    """Create Alice -KNOWS-> Bob -KNOWS-> Charlie and remove it afterwards."""
    alice = await rest.create_node({"name": "Alice", "age": 30})
    bob = await rest.create_node({"name": "Bob", "age": 25})
    charlie = await rest.create_node({"name": "Charlie", "age": 35})
    relationships = [
        await rest.create_relationship(alice.id, bob.id, "KNOWS"),
        await rest.create_relationship(bob.id, charlie.id, "KNOWS"),
    ]

    yield {"alice": alice, "bob": bob, "charlie": charlie}

    for relationship in relationships:
        await rest.delete_relationship(relationship.id, fail_if_not_found=False)
    for node in (alice, bob, charlie):
        await rest.delete_node(node.id, fail_if_not_found=False)
