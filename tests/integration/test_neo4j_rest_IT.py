import pytest

from mcp_neo4j_rest.models import (
    EntityType,
    Evaluator,
    RelationshipDirection,
    RelationshipSpec,
    TraversalQuery,
    TraversalReturnType,
)


@pytest.mark.asyncio
async def test_service_root(rest):
    root = await rest.get_service_root()

    assert root.node.endswith("/node")
    assert root.cypher.endswith("/cypher")


@pytest.mark.asyncio
async def test_node_lifecycle(rest):
    node = await rest.create_node({"name": "Dora"})
    try:
        fetched = await rest.get_node(node.id)
        assert fetched.data == {"name": "Dora"}

        await rest.set_property(EntityType.NODE, node.id, "age", 41)
        assert await rest.get_property(EntityType.NODE, node.id, "age") == 41
        assert await rest.get_properties(EntityType.NODE, node.id) == {"name": "Dora", "age": 41}
    finally:
        await rest.delete_node(node.id)

    assert await rest.get_node(node.id, fail_if_not_found=False) is None


@pytest.mark.asyncio
async def test_run_cypher_query(rest, init_data):
    result = await rest.run_cypher_query(
        "START n=node({id}) RETURN n.name", {"id": int(init_data["alice"].id)}
    )

    assert result.data == [["Alice"]]


@pytest.mark.asyncio
async def test_node_relationships(rest, init_data):
    outgoing = await rest.get_node_relationships(
        init_data["bob"].id, RelationshipDirection.OUT, ["KNOWS"]
    )
    incoming = await rest.get_node_relationships(init_data["bob"].id, RelationshipDirection.IN)

    assert [r.end for r in outgoing] == [init_data["charlie"].self_uri]
    assert [r.start for r in incoming] == [init_data["alice"].self_uri]


@pytest.mark.asyncio
async def test_paged_traversal(rest, init_data):
    query = TraversalQuery(
        relationships=[RelationshipSpec(type="KNOWS", direction="out")],
        return_filter=Evaluator(name="all"),
        max_depth=2,
    )

    pages = [
        page
        async for page in rest.iter_traversal_pages(
            init_data["alice"].id, query, TraversalReturnType.NODE, page_size=1
        )
    ]
    names = [node.data["name"] for page in pages for node in page.items]

    assert [p.page_number for p in pages] == list(range(1, len(pages) + 1))
    assert names == ["Alice", "Bob", "Charlie"]


@pytest.mark.asyncio
async def test_find_path(rest, init_data):
    path = await rest.find_path(
        init_data["alice"].id,
        init_data["charlie"].id,
        relationships=RelationshipSpec(type="KNOWS", direction="out"),
        max_depth=3,
    )

    assert path.length == 2
    assert path.nodes[1] == init_data["bob"].self_uri


@pytest.mark.asyncio
async def test_mcp_get_node(mcp_server, init_data):
    tools = await mcp_server.get_tools()

    result = await tools["get_node"].fn(node_id=int(init_data["alice"].id), fail_if_not_found=True)

    assert result.structured_content["result"]["data"]["name"] == "Alice"
