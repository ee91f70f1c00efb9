"""Neo4j REST MCP Server - Main server implementation."""

import json
import logging
import re
import sys
from typing import Any, Dict, List, Literal, Optional

from fastmcp import Context
from fastmcp.exceptions import ToolError
from fastmcp.server import FastMCP
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent, ToolAnnotations
from pydantic import Field
from pydantic_core import to_jsonable_python
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from .connection import Neo4jConnection
from .exceptions import Neo4jConnectionError
from .models import (
    BatchJob,
    EntityType,
    PathAlgorithm,
    RelationshipDirection,
    RelationshipSpec,
    TraversalQuery,
    TraversalReturnType,
)
from .neo4j_rest import Neo4jRest
from .utils import _truncate_string_to_tokens, _value_sanitize, format_namespace

logger = logging.getLogger("mcp_neo4j_rest")
logger.setLevel(logging.INFO)

# Write query detection pattern
WRITE_QUERY_PATTERN = re.compile(
    r"\b(MERGE|CREATE|SET|DELETE|REMOVE|ADD|DROP|FOREACH)\b", re.IGNORECASE
)


def _is_write_query(query: str) -> bool:
    """Check if the query is a write query."""
    return WRITE_QUERY_PATTERN.search(query) is not None


def _read_annotations(title: str) -> ToolAnnotations:
    return ToolAnnotations(
        title=title,
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )


def _write_annotations(
    title: str, destructive: bool = False, idempotent: bool = True
) -> ToolAnnotations:
    return ToolAnnotations(
        title=title,
        readOnlyHint=False,
        destructiveHint=destructive,
        idempotentHint=idempotent,
        openWorldHint=True,
    )


def _tool_result(value: Any, token_limit: Optional[int] = None) -> ToolResult:
    """Wrap an operation result as JSON text plus structured content."""
    payload = to_jsonable_python(value, by_alias=True, exclude_none=True)
    text = json.dumps(payload, default=str)
    if token_limit:
        text = _truncate_string_to_tokens(text, token_limit)
    return ToolResult(
        content=[TextContent(type="text", text=text)],
        structured_content={"result": payload},
    )


def _deletion_result(deleted: bool, subject: str, verb: str = "deleted") -> ToolResult:
    # a tolerated 404 means nothing was there to remove
    if deleted:
        return _tool_result(f"{subject} {verb}")
    return _tool_result(f"{subject} not found, nothing {verb}")


def create_mcp_server(
    rest: Neo4jRest,
    namespace: str = "",
    read_only: bool = False,
    token_limit: Optional[int] = None,
) -> FastMCP:
    """
    Create and configure the FastMCP server with the Neo4j REST tools.

    Args:
        rest: Operations bound to a connected Neo4jConnection
        namespace: Optional namespace prefix for tool names
        read_only: If True, disable write operations
        token_limit: Optional limit on the tokens of query and traversal results

    Returns:
        Configured FastMCP server instance
    """
    mcp: FastMCP = FastMCP("mcp-neo4j-rest")
    namespace_prefix = format_namespace(namespace)
    allow_writes = not read_only

    @mcp.tool(
        name=namespace_prefix + "get_service_root",
        annotations=_read_annotations("Get Service Root"),
    )
    async def get_service_root() -> ToolResult:
        """Get the service root of the Neo4j server: its version and the URIs of its endpoints."""
        logger.info("MCP tool: get_service_root")
        try:
            return _tool_result(await rest.get_service_root())
        except Exception as e:
            logger.error(f"Error getting service root: {e}")
            raise ToolError(f"Error getting service root: {e}")

    @mcp.tool(
        name=namespace_prefix + "run_cypher_query",
        annotations=_write_annotations(
            "Run Cypher Query", destructive=True, idempotent=False
        ),
    )
    async def run_cypher_query(
        query: str = Field(..., description="The Cypher query to execute."),
        params: Optional[Dict[str, Any]] = Field(
            None, description="The parameters to pass to the Cypher query."
        ),
        include_stats: bool = Field(
            False, description="Return statistics about the changes made by the query."
        ),
        profile: bool = Field(False, description="Return the profile of the query."),
    ) -> ToolResult:
        """
        Execute a Cypher query through the legacy cypher endpoint.

        Returns the columns and rows of the result. In read-only mode only queries
        without write clauses are accepted.

        Example call:
        {
            "query": "MATCH (p:Person) WHERE p.name = {name} RETURN p.age",
            "params": {"name": "Alice"}
        }
        """
        if read_only and _is_write_query(query):
            raise ToolError("Only read queries are allowed in read-only mode")

        logger.info("MCP tool: run_cypher_query")
        try:
            result = await rest.run_cypher_query(query, params, include_stats, profile)
            # sanitize cell by cell so every row keeps one value per column
            result.data = [[_value_sanitize(cell) for cell in row] for row in result.data]
            logger.debug(f"Cypher query returned {len(result.data)} rows")
            return _tool_result(result, token_limit)
        except Exception as e:
            logger.error(f"Error executing cypher query: {e}\n{query}\n{params}")
            raise ToolError(f"Error: {e}\n{query}\n{params}")

    # Nodes

    @mcp.tool(
        name=namespace_prefix + "get_node",
        annotations=_read_annotations("Get Node"),
    )
    async def get_node(
        node_id: int = Field(..., description="The id of the node."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the node does not exist instead of returning null."
        ),
    ) -> ToolResult:
        """Get a node with its properties and metadata."""
        logger.info(f"MCP tool: get_node ({node_id})")
        try:
            return _tool_result(await rest.get_node(node_id, fail_if_not_found))
        except Exception as e:
            logger.error(f"Error getting node {node_id}: {e}")
            raise ToolError(f"Error getting node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "create_node",
        annotations=_write_annotations("Create Node", idempotent=False),
        enabled=allow_writes,
    )
    async def create_node(
        properties: Optional[Dict[str, Any]] = Field(
            None, description="The properties of the new node."
        ),
        labels: Optional[List[str]] = Field(
            None, description="Labels to add to the new node (Neo4j 2.0 or later)."
        ),
    ) -> ToolResult:
        """
        Create a node.

        Example call:
        {
            "properties": {"name": "Alice", "age": 30},
            "labels": ["Person"]
        }
        """
        logger.info("MCP tool: create_node")
        try:
            return _tool_result(await rest.create_node(properties, labels))
        except Exception as e:
            logger.error(f"Error creating node: {e}")
            raise ToolError(f"Error creating node: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_node",
        annotations=_write_annotations("Delete Node", destructive=True),
        enabled=allow_writes,
    )
    async def delete_node(
        node_id: int = Field(..., description="The id of the node to delete."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the node does not exist."
        ),
    ) -> ToolResult:
        """Delete a node. The node must not have relationships anymore."""
        logger.info(f"MCP tool: delete_node ({node_id})")
        try:
            deleted = await rest.delete_node(node_id, fail_if_not_found)
            return _deletion_result(deleted, f"Node {node_id}")
        except Exception as e:
            logger.error(f"Error deleting node {node_id}: {e}")
            raise ToolError(f"Error deleting node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_node_relationships",
        annotations=_read_annotations("Get Node Relationships"),
    )
    async def get_node_relationships(
        node_id: int = Field(..., description="The id of the node."),
        direction: RelationshipDirection = Field(
            RelationshipDirection.ALL,
            description="Which relationships to return: all, in (incoming) or out (outgoing).",
        ),
        types: Optional[List[str]] = Field(
            None, description="Only return relationships of these types."
        ),
    ) -> ToolResult:
        """List the relationships of a node."""
        logger.info(f"MCP tool: get_node_relationships ({node_id}, {direction})")
        try:
            return _tool_result(
                await rest.get_node_relationships(node_id, direction, types)
            )
        except Exception as e:
            logger.error(f"Error getting relationships of node {node_id}: {e}")
            raise ToolError(f"Error getting relationships of node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_nodes_by_label",
        annotations=_read_annotations("Get Nodes By Label"),
    )
    async def get_nodes_by_label(
        label: str = Field(..., description="The label of the nodes."),
        property_key: Optional[str] = Field(
            None, description="Only return nodes having this property..."
        ),
        property_value: Any = Field(None, description="...set to this value."),
    ) -> ToolResult:
        """List the nodes with a label (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: get_nodes_by_label ({label})")
        try:
            return _tool_result(
                await rest.get_nodes_by_label(label, property_key, property_value)
            )
        except Exception as e:
            logger.error(f"Error getting nodes with label {label}: {e}")
            raise ToolError(f"Error getting nodes with label {label}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_all_labels",
        annotations=_read_annotations("Get All Labels"),
    )
    async def get_all_labels() -> ToolResult:
        """List every label used in the database (Neo4j 2.0 or later)."""
        logger.info("MCP tool: get_all_labels")
        try:
            return _tool_result(await rest.get_all_labels())
        except Exception as e:
            logger.error(f"Error getting labels: {e}")
            raise ToolError(f"Error getting labels: {e}")

    # Relationships

    @mcp.tool(
        name=namespace_prefix + "get_relationship",
        annotations=_read_annotations("Get Relationship"),
    )
    async def get_relationship(
        relationship_id: int = Field(..., description="The id of the relationship."),
        fail_if_not_found: bool = Field(
            True,
            description="Fail when the relationship does not exist instead of returning null.",
        ),
    ) -> ToolResult:
        """Get a relationship with its type, start and end nodes and properties."""
        logger.info(f"MCP tool: get_relationship ({relationship_id})")
        try:
            return _tool_result(
                await rest.get_relationship(relationship_id, fail_if_not_found)
            )
        except Exception as e:
            logger.error(f"Error getting relationship {relationship_id}: {e}")
            raise ToolError(f"Error getting relationship {relationship_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "create_relationship",
        annotations=_write_annotations("Create Relationship", idempotent=False),
        enabled=allow_writes,
    )
    async def create_relationship(
        from_node_id: int = Field(..., description="The id of the start node."),
        to_node_id: int = Field(..., description="The id of the end node."),
        type: str = Field(..., description="The relationship type, e.g. KNOWS."),
        properties: Optional[Dict[str, Any]] = Field(
            None, description="The properties of the new relationship."
        ),
    ) -> ToolResult:
        """
        Create a relationship between two existing nodes.

        Example call:
        {"from_node_id": 1, "to_node_id": 2, "type": "KNOWS", "properties": {"since": 2010}}
        """
        logger.info(f"MCP tool: create_relationship ({from_node_id})-[:{type}]->({to_node_id})")
        try:
            return _tool_result(
                await rest.create_relationship(from_node_id, to_node_id, type, properties)
            )
        except Exception as e:
            logger.error(f"Error creating relationship: {e}")
            raise ToolError(f"Error creating relationship: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_relationship",
        annotations=_write_annotations("Delete Relationship", destructive=True),
        enabled=allow_writes,
    )
    async def delete_relationship(
        relationship_id: int = Field(..., description="The id of the relationship."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the relationship does not exist."
        ),
    ) -> ToolResult:
        """Delete a relationship."""
        logger.info(f"MCP tool: delete_relationship ({relationship_id})")
        try:
            deleted = await rest.delete_relationship(relationship_id, fail_if_not_found)
            return _deletion_result(deleted, f"Relationship {relationship_id}")
        except Exception as e:
            logger.error(f"Error deleting relationship {relationship_id}: {e}")
            raise ToolError(f"Error deleting relationship {relationship_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_relationship_types",
        annotations=_read_annotations("Get Relationship Types"),
    )
    async def get_relationship_types() -> ToolResult:
        """List every relationship type used in the database."""
        logger.info("MCP tool: get_relationship_types")
        try:
            return _tool_result(await rest.get_relationship_types())
        except Exception as e:
            logger.error(f"Error getting relationship types: {e}")
            raise ToolError(f"Error getting relationship types: {e}")

    # Properties

    @mcp.tool(
        name=namespace_prefix + "get_properties",
        annotations=_read_annotations("Get Properties"),
    )
    async def get_properties(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
    ) -> ToolResult:
        """Get all the properties of a node or relationship."""
        logger.info(f"MCP tool: get_properties ({entity_type} {entity_id})")
        try:
            return _tool_result(await rest.get_properties(entity_type, entity_id))
        except Exception as e:
            logger.error(f"Error getting properties of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error getting properties of {entity_type} {entity_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_property",
        annotations=_read_annotations("Get Property"),
    )
    async def get_property(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
        key: str = Field(..., description="The property key."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the property does not exist instead of returning null."
        ),
    ) -> ToolResult:
        """Get one property of a node or relationship."""
        logger.info(f"MCP tool: get_property ({entity_type} {entity_id}.{key})")
        try:
            return _tool_result(
                await rest.get_property(entity_type, entity_id, key, fail_if_not_found)
            )
        except Exception as e:
            logger.error(f"Error getting property {key} of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error getting property {key} of {entity_type} {entity_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "set_properties",
        annotations=_write_annotations("Set Properties", destructive=True),
        enabled=allow_writes,
    )
    async def set_properties(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
        properties: Dict[str, Any] = Field(
            ..., description="The new properties, replacing all the existing ones."
        ),
    ) -> ToolResult:
        """Replace all the properties of a node or relationship."""
        logger.info(f"MCP tool: set_properties ({entity_type} {entity_id})")
        try:
            await rest.set_properties(entity_type, entity_id, properties)
            return _tool_result(f"Properties of {EntityType(entity_type).value} {entity_id} set")
        except Exception as e:
            logger.error(f"Error setting properties of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error setting properties of {entity_type} {entity_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "set_property",
        annotations=_write_annotations("Set Property"),
        enabled=allow_writes,
    )
    async def set_property(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
        key: str = Field(..., description="The property key."),
        value: Any = Field(..., description="The property value."),
    ) -> ToolResult:
        """Set one property of a node or relationship."""
        logger.info(f"MCP tool: set_property ({entity_type} {entity_id}.{key})")
        try:
            await rest.set_property(entity_type, entity_id, key, value)
            return _tool_result(f"Property {key} of {EntityType(entity_type).value} {entity_id} set")
        except Exception as e:
            logger.error(f"Error setting property {key} of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error setting property {key} of {entity_type} {entity_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_properties",
        annotations=_write_annotations("Delete Properties", destructive=True),
        enabled=allow_writes,
    )
    async def delete_properties(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
    ) -> ToolResult:
        """Delete all the properties of a node or relationship."""
        logger.info(f"MCP tool: delete_properties ({entity_type} {entity_id})")
        try:
            await rest.delete_properties(entity_type, entity_id)
            return _tool_result(f"Properties of {EntityType(entity_type).value} {entity_id} deleted")
        except Exception as e:
            logger.error(f"Error deleting properties of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error deleting properties of {entity_type} {entity_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_property",
        annotations=_write_annotations("Delete Property", destructive=True),
        enabled=allow_writes,
    )
    async def delete_property(
        entity_type: EntityType = Field(..., description="node or relationship."),
        entity_id: int = Field(..., description="The id of the node or relationship."),
        key: str = Field(..., description="The property key."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the property does not exist."
        ),
    ) -> ToolResult:
        """Delete one property of a node or relationship."""
        logger.info(f"MCP tool: delete_property ({entity_type} {entity_id}.{key})")
        try:
            deleted = await rest.delete_property(entity_type, entity_id, key, fail_if_not_found)
            return _deletion_result(
                deleted, f"Property {key} of {EntityType(entity_type).value} {entity_id}"
            )
        except Exception as e:
            logger.error(f"Error deleting property {key} of {entity_type} {entity_id}: {e}")
            raise ToolError(f"Error deleting property {key} of {entity_type} {entity_id}: {e}")

    # Labels

    @mcp.tool(
        name=namespace_prefix + "add_node_labels",
        annotations=_write_annotations("Add Node Labels"),
        enabled=allow_writes,
    )
    async def add_node_labels(
        node_id: int = Field(..., description="The id of the node."),
        labels: List[str] = Field(..., description="The labels to add.", min_length=1),
    ) -> ToolResult:
        """Add labels to a node (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: add_node_labels ({node_id}, {labels})")
        try:
            await rest.add_node_labels(node_id, labels)
            return _tool_result(f"Labels added to node {node_id}")
        except Exception as e:
            logger.error(f"Error adding labels to node {node_id}: {e}")
            raise ToolError(f"Error adding labels to node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "set_node_labels",
        annotations=_write_annotations("Set Node Labels", destructive=True),
        enabled=allow_writes,
    )
    async def set_node_labels(
        node_id: int = Field(..., description="The id of the node."),
        labels: List[str] = Field(
            ..., description="The labels, replacing all the existing ones."
        ),
    ) -> ToolResult:
        """Replace all the labels of a node (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: set_node_labels ({node_id}, {labels})")
        try:
            await rest.set_node_labels(node_id, labels)
            return _tool_result(f"Labels of node {node_id} set")
        except Exception as e:
            logger.error(f"Error setting labels of node {node_id}: {e}")
            raise ToolError(f"Error setting labels of node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_node_label",
        annotations=_write_annotations("Delete Node Label", destructive=True),
        enabled=allow_writes,
    )
    async def delete_node_label(
        node_id: int = Field(..., description="The id of the node."),
        label: str = Field(..., description="The label to remove."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the node does not exist."
        ),
    ) -> ToolResult:
        """Remove a label from a node (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: delete_node_label ({node_id}, {label})")
        try:
            deleted = await rest.delete_node_label(node_id, label, fail_if_not_found)
            return _deletion_result(deleted, f"Label {label} of node {node_id}", "removed")
        except Exception as e:
            logger.error(f"Error removing label {label} from node {node_id}: {e}")
            raise ToolError(f"Error removing label {label} from node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_node_labels",
        annotations=_read_annotations("Get Node Labels"),
    )
    async def get_node_labels(
        node_id: int = Field(..., description="The id of the node."),
    ) -> ToolResult:
        """List the labels of a node (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: get_node_labels ({node_id})")
        try:
            return _tool_result(await rest.get_node_labels(node_id))
        except Exception as e:
            logger.error(f"Error getting labels of node {node_id}: {e}")
            raise ToolError(f"Error getting labels of node {node_id}: {e}")

    # Schema indexes and constraints

    @mcp.tool(
        name=namespace_prefix + "create_schema_index",
        annotations=_write_annotations("Create Schema Index"),
        enabled=allow_writes,
    )
    async def create_schema_index(
        label: str = Field(..., description="The label to index."),
        property_key: str = Field(..., description="The property to index."),
    ) -> ToolResult:
        """Create a schema index on a label and property (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: create_schema_index (:{label}({property_key}))")
        try:
            return _tool_result(await rest.create_schema_index(label, property_key))
        except Exception as e:
            logger.error(f"Error creating schema index on :{label}({property_key}): {e}")
            raise ToolError(f"Error creating schema index on :{label}({property_key}): {e}")

    @mcp.tool(
        name=namespace_prefix + "get_schema_indexes",
        annotations=_read_annotations("Get Schema Indexes"),
    )
    async def get_schema_indexes(
        label: str = Field(..., description="The label whose indexes to list."),
    ) -> ToolResult:
        """List the schema indexes of a label (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: get_schema_indexes ({label})")
        try:
            return _tool_result(await rest.get_schema_indexes(label))
        except Exception as e:
            logger.error(f"Error getting schema indexes of {label}: {e}")
            raise ToolError(f"Error getting schema indexes of {label}: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_schema_index",
        annotations=_write_annotations("Delete Schema Index", destructive=True),
        enabled=allow_writes,
    )
    async def delete_schema_index(
        label: str = Field(..., description="The indexed label."),
        property_key: str = Field(..., description="The indexed property."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the index does not exist."
        ),
    ) -> ToolResult:
        """Drop a schema index (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: delete_schema_index (:{label}({property_key}))")
        try:
            deleted = await rest.delete_schema_index(label, property_key, fail_if_not_found)
            return _deletion_result(deleted, f"Schema index on :{label}({property_key})")
        except Exception as e:
            logger.error(f"Error deleting schema index on :{label}({property_key}): {e}")
            raise ToolError(f"Error deleting schema index on :{label}({property_key}): {e}")

    @mcp.tool(
        name=namespace_prefix + "create_uniqueness_constraint",
        annotations=_write_annotations("Create Uniqueness Constraint"),
        enabled=allow_writes,
    )
    async def create_uniqueness_constraint(
        label: str = Field(..., description="The constrained label."),
        property_key: str = Field(..., description="The property that must be unique."),
    ) -> ToolResult:
        """Create a uniqueness constraint on a label and property (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: create_uniqueness_constraint (:{label}({property_key}))")
        try:
            return _tool_result(
                await rest.create_uniqueness_constraint(label, property_key)
            )
        except Exception as e:
            logger.error(f"Error creating constraint on :{label}({property_key}): {e}")
            raise ToolError(f"Error creating constraint on :{label}({property_key}): {e}")

    @mcp.tool(
        name=namespace_prefix + "get_uniqueness_constraints",
        annotations=_read_annotations("Get Uniqueness Constraints"),
    )
    async def get_uniqueness_constraints(
        label: str = Field(..., description="The label whose constraints to list."),
    ) -> ToolResult:
        """List the uniqueness constraints of a label (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: get_uniqueness_constraints ({label})")
        try:
            return _tool_result(await rest.get_uniqueness_constraints(label))
        except Exception as e:
            logger.error(f"Error getting constraints of {label}: {e}")
            raise ToolError(f"Error getting constraints of {label}: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_uniqueness_constraint",
        annotations=_write_annotations("Delete Uniqueness Constraint", destructive=True),
        enabled=allow_writes,
    )
    async def delete_uniqueness_constraint(
        label: str = Field(..., description="The constrained label."),
        property_key: str = Field(..., description="The constrained property."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the constraint does not exist."
        ),
    ) -> ToolResult:
        """Drop a uniqueness constraint (Neo4j 2.0 or later)."""
        logger.info(f"MCP tool: delete_uniqueness_constraint (:{label}({property_key}))")
        try:
            deleted = await rest.delete_uniqueness_constraint(label, property_key, fail_if_not_found)
            return _deletion_result(deleted, f"Constraint on :{label}({property_key})")
        except Exception as e:
            logger.error(f"Error deleting constraint on :{label}({property_key}): {e}")
            raise ToolError(f"Error deleting constraint on :{label}({property_key}): {e}")

    # Legacy indexes

    @mcp.tool(
        name=namespace_prefix + "create_legacy_index",
        annotations=_write_annotations("Create Legacy Index"),
        enabled=allow_writes,
    )
    async def create_legacy_index(
        entity_type: EntityType = Field(..., description="Index nodes or relationships."),
        name: str = Field(..., description="The name of the index."),
        config: Optional[Dict[str, Any]] = Field(
            None,
            description='Index configuration, e.g. {"type": "fulltext", "provider": "lucene"}.',
        ),
    ) -> ToolResult:
        """Create a legacy index. Deprecated since Neo4j 2.0, prefer schema indexes."""
        logger.info(f"MCP tool: create_legacy_index ({entity_type} {name})")
        try:
            return _tool_result(await rest.create_legacy_index(entity_type, name, config))
        except Exception as e:
            logger.error(f"Error creating legacy index {name}: {e}")
            raise ToolError(f"Error creating legacy index {name}: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_legacy_indexes",
        annotations=_read_annotations("Get Legacy Indexes"),
    )
    async def get_legacy_indexes(
        entity_type: EntityType = Field(..., description="List node or relationship indexes."),
    ) -> ToolResult:
        """List the legacy indexes. Deprecated since Neo4j 2.0, prefer schema indexes."""
        logger.info(f"MCP tool: get_legacy_indexes ({entity_type})")
        try:
            return _tool_result(await rest.get_legacy_indexes(entity_type))
        except Exception as e:
            logger.error(f"Error getting legacy indexes: {e}")
            raise ToolError(f"Error getting legacy indexes: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_legacy_index",
        annotations=_write_annotations("Delete Legacy Index", destructive=True),
        enabled=allow_writes,
    )
    async def delete_legacy_index(
        entity_type: EntityType = Field(..., description="Node or relationship index."),
        name: str = Field(..., description="The name of the index."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the index does not exist."
        ),
    ) -> ToolResult:
        """Delete a legacy index. Deprecated since Neo4j 2.0, prefer schema indexes."""
        logger.info(f"MCP tool: delete_legacy_index ({entity_type} {name})")
        try:
            deleted = await rest.delete_legacy_index(entity_type, name, fail_if_not_found)
            return _deletion_result(deleted, f"Legacy index {name}")
        except Exception as e:
            logger.error(f"Error deleting legacy index {name}: {e}")
            raise ToolError(f"Error deleting legacy index {name}: {e}")

    @mcp.tool(
        name=namespace_prefix + "add_to_legacy_index",
        annotations=_write_annotations("Add To Legacy Index"),
        enabled=allow_writes,
    )
    async def add_to_legacy_index(
        entity_type: EntityType = Field(..., description="Node or relationship index."),
        index_name: str = Field(..., description="The name of the index."),
        entity_id: int = Field(..., description="The id of the entity to index."),
        key: str = Field(..., description="The key to index the entity under."),
        value: Any = Field(..., description="The value to index the entity under."),
        unique: bool = Field(
            False,
            description="Keep the entity already indexed under key/value and return it instead.",
        ),
    ) -> ToolResult:
        """Add a node or relationship to a legacy index. Deprecated since Neo4j 2.0."""
        logger.info(f"MCP tool: add_to_legacy_index ({index_name} {key}={value})")
        try:
            return _tool_result(
                await rest.add_to_legacy_index(
                    entity_type, index_name, entity_id, key, value, unique
                )
            )
        except Exception as e:
            logger.error(f"Error adding {entity_type} {entity_id} to index {index_name}: {e}")
            raise ToolError(f"Error adding {entity_type} {entity_id} to index {index_name}: {e}")

    @mcp.tool(
        name=namespace_prefix + "remove_from_legacy_index",
        annotations=_write_annotations("Remove From Legacy Index", destructive=True),
        enabled=allow_writes,
    )
    async def remove_from_legacy_index(
        entity_type: EntityType = Field(..., description="Node or relationship index."),
        index_name: str = Field(..., description="The name of the index."),
        entity_id: int = Field(..., description="The id of the indexed entity."),
        key: Optional[str] = Field(None, description="Only remove the entries under this key."),
        value: Any = Field(None, description="Only remove the entry with this value."),
        fail_if_not_found: bool = Field(
            True, description="Fail when the index or the entry does not exist."
        ),
    ) -> ToolResult:
        """Remove a node or relationship from a legacy index. Deprecated since Neo4j 2.0."""
        logger.info(f"MCP tool: remove_from_legacy_index ({index_name} {entity_id})")
        try:
            deleted = await rest.remove_from_legacy_index(
                entity_type, index_name, entity_id, key, value, fail_if_not_found
            )
            return _deletion_result(
                deleted,
                f"Entry of {EntityType(entity_type).value} {entity_id} in index {index_name}",
                "removed",
            )
        except Exception as e:
            logger.error(f"Error removing {entity_type} {entity_id} from index {index_name}: {e}")
            raise ToolError(f"Error removing {entity_type} {entity_id} from index {index_name}: {e}")

    @mcp.tool(
        name=namespace_prefix + "find_in_legacy_index",
        annotations=_read_annotations("Find In Legacy Index"),
    )
    async def find_in_legacy_index(
        entity_type: EntityType = Field(..., description="Node or relationship index."),
        index_name: str = Field(..., description="The name of the index."),
        key: str = Field(..., description="The indexed key."),
        value: Any = Field(..., description="The exact indexed value."),
    ) -> ToolResult:
        """Find the entities indexed under an exact key/value. Deprecated since Neo4j 2.0."""
        logger.info(f"MCP tool: find_in_legacy_index ({index_name} {key}={value})")
        try:
            return _tool_result(
                await rest.find_in_legacy_index(entity_type, index_name, key, value)
            )
        except Exception as e:
            logger.error(f"Error searching index {index_name}: {e}")
            raise ToolError(f"Error searching index {index_name}: {e}")

    @mcp.tool(
        name=namespace_prefix + "query_legacy_index",
        annotations=_read_annotations("Query Legacy Index"),
    )
    async def query_legacy_index(
        entity_type: EntityType = Field(..., description="Node or relationship index."),
        index_name: str = Field(..., description="The name of the index."),
        query: str = Field(..., description="Index query, e.g. 'name:Al*'."),
    ) -> ToolResult:
        """Search a legacy index with a query string. Deprecated since Neo4j 2.0."""
        logger.info(f"MCP tool: query_legacy_index ({index_name} '{query}')")
        try:
            return _tool_result(
                await rest.query_legacy_index(entity_type, index_name, query)
            )
        except Exception as e:
            logger.error(f"Error querying index {index_name}: {e}")
            raise ToolError(f"Error querying index {index_name}: {e}")

    # Traversals and path finding

    @mcp.tool(
        name=namespace_prefix + "traverse",
        annotations=_read_annotations("Traverse"),
    )
    async def traverse(
        node_id: int = Field(..., description="The id of the start node."),
        query: TraversalQuery = Field(..., description="The traversal description."),
        return_type: TraversalReturnType = Field(
            TraversalReturnType.NODE,
            description="Return nodes, relationships, paths or fullpaths.",
        ),
    ) -> ToolResult:
        """
        Walk the graph from a node and return everything the walk reaches.

        Example call:
        {
            "node_id": 1,
            "query": {
                "order": "breadth_first",
                "relationships": [{"type": "KNOWS", "direction": "out"}],
                "return_filter": {"language": "builtin", "name": "all_but_start_node"},
                "max_depth": 2
            },
            "return_type": "node"
        }
        """
        logger.info(f"MCP tool: traverse ({node_id}, {return_type})")
        try:
            return _tool_result(
                await rest.traverse(node_id, query, return_type), token_limit
            )
        except Exception as e:
            logger.error(f"Error traversing from node {node_id}: {e}")
            raise ToolError(f"Error traversing from node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "traverse_paged",
        annotations=_read_annotations("Traverse Paged"),
    )
    async def traverse_paged(
        node_id: int = Field(..., description="The id of the start node."),
        query: TraversalQuery = Field(..., description="The traversal description."),
        return_type: TraversalReturnType = Field(
            TraversalReturnType.NODE,
            description="Return nodes, relationships, paths or fullpaths.",
        ),
        page_size: int = Field(50, description="Number of results per page.", ge=1),
        lease_time: int = Field(
            60, description="Seconds the server keeps the traversal between pages.", ge=1
        ),
        ctx: Context | None = None,
    ) -> ToolResult:
        """
        Walk the graph from a node, reading the results page by page.

        Returns the list of pages in order. Progress is reported after each page.
        """
        logger.info(f"MCP tool: traverse_paged ({node_id}, {return_type}, page_size={page_size})")
        try:
            pages = []
            async for page in rest.iter_traversal_pages(
                node_id, query, return_type, page_size, lease_time
            ):
                pages.append(page)
                if ctx is not None:
                    await ctx.report_progress(
                        progress=page.page_number,
                        message=f"Read page {page.page_number} ({len(page.items)} items)",
                    )
            return _tool_result(pages, token_limit)
        except Exception as e:
            logger.error(f"Error traversing from node {node_id}: {e}")
            raise ToolError(f"Error traversing from node {node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "find_path",
        annotations=_read_annotations("Find Path"),
    )
    async def find_path(
        from_node_id: int = Field(..., description="The id of the start node."),
        to_node_id: int = Field(..., description="The id of the end node."),
        algorithm: PathAlgorithm = Field(
            PathAlgorithm.SHORTEST_PATH, description="The path finding algorithm."
        ),
        relationships: Optional[RelationshipSpec] = Field(
            None, description="The relationship type and direction to follow."
        ),
        max_depth: Optional[int] = Field(None, description="Maximum path length.", ge=1),
        cost_property: Optional[str] = Field(
            None, description="Relationship property holding the cost, for dijkstra."
        ),
        default_cost: Optional[float] = Field(
            None, description="Cost of relationships without the cost property, for dijkstra."
        ),
        fail_if_not_found: bool = Field(
            False, description="Fail when there is no path instead of returning null."
        ),
    ) -> ToolResult:
        """Find one path between two nodes."""
        logger.info(f"MCP tool: find_path ({from_node_id} -> {to_node_id}, {algorithm})")
        try:
            return _tool_result(
                await rest.find_path(
                    from_node_id,
                    to_node_id,
                    algorithm,
                    relationships,
                    max_depth,
                    cost_property,
                    default_cost,
                    fail_if_not_found,
                )
            )
        except Exception as e:
            logger.error(f"Error finding path {from_node_id} -> {to_node_id}: {e}")
            raise ToolError(f"Error finding path {from_node_id} -> {to_node_id}: {e}")

    @mcp.tool(
        name=namespace_prefix + "find_paths",
        annotations=_read_annotations("Find Paths"),
    )
    async def find_paths(
        from_node_id: int = Field(..., description="The id of the start node."),
        to_node_id: int = Field(..., description="The id of the end node."),
        algorithm: PathAlgorithm = Field(
            PathAlgorithm.SHORTEST_PATH, description="The path finding algorithm."
        ),
        relationships: Optional[RelationshipSpec] = Field(
            None, description="The relationship type and direction to follow."
        ),
        max_depth: Optional[int] = Field(None, description="Maximum path length.", ge=1),
        cost_property: Optional[str] = Field(
            None, description="Relationship property holding the cost, for dijkstra."
        ),
        default_cost: Optional[float] = Field(
            None, description="Cost of relationships without the cost property, for dijkstra."
        ),
    ) -> ToolResult:
        """Find all the paths between two nodes that the algorithm yields."""
        logger.info(f"MCP tool: find_paths ({from_node_id} -> {to_node_id}, {algorithm})")
        try:
            return _tool_result(
                await rest.find_paths(
                    from_node_id,
                    to_node_id,
                    algorithm,
                    relationships,
                    max_depth,
                    cost_property,
                    default_cost,
                ),
                token_limit,
            )
        except Exception as e:
            logger.error(f"Error finding paths {from_node_id} -> {to_node_id}: {e}")
            raise ToolError(f"Error finding paths {from_node_id} -> {to_node_id}: {e}")

    # Batch

    @mcp.tool(
        name=namespace_prefix + "execute_batch",
        annotations=_write_annotations("Execute Batch", destructive=True, idempotent=False),
        enabled=allow_writes,
    )
    async def execute_batch(
        jobs: List[BatchJob] = Field(
            ..., description="The operations to run, in order, in one transaction."
        ),
    ) -> ToolResult:
        """
        Run several REST operations in one request and one transaction.

        A job can refer to the entity created by an earlier job with {id}.

        Example call:
        {
            "jobs": [
                {"id": 0, "method": "POST", "to": "/node", "body": {"name": "Alice"}},
                {"id": 1, "method": "POST", "to": "/node", "body": {"name": "Bob"}},
                {"id": 2, "method": "POST", "to": "{0}/relationships",
                 "body": {"to": "{1}", "type": "KNOWS"}}
            ]
        }
        """
        logger.info(f"MCP tool: execute_batch ({len(jobs)} jobs)")
        try:
            job_objects = [BatchJob.model_validate(job) for job in jobs]
            return _tool_result(await rest.execute_batch(job_objects), token_limit)
        except Exception as e:
            logger.error(f"Error executing batch: {e}")
            raise ToolError(f"Error executing batch: {e}")

    return mcp


async def main(
    db_url: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
    streaming: bool = True,
    connector: Optional[str] = None,
    transport: Literal["stdio", "sse", "http"] = "stdio",
    namespace: str = "",
    host: str = "127.0.0.1",
    port: int = 8000,
    path: str = "/mcp/",
    allow_origins: List[str] = [],
    allowed_hosts: List[str] = [],
    read_timeout: int = 30,
    token_limit: Optional[int] = None,
    read_only: bool = False,
) -> None:
    """
    Main entry point for the Neo4j REST MCP server.

    Args:
        db_url: Base URI of the Neo4j REST API
        username: User for HTTP Basic authentication
        password: Password for HTTP Basic authentication
        streaming: Ask the server to stream its responses
        connector: Optional outbound connector name sent with every request
        transport: Transport protocol (stdio, sse, or http)
        namespace: Optional tool namespace prefix
        host: Server host for HTTP/SSE transport
        port: Server port for HTTP/SSE transport
        path: Server path for HTTP/SSE transport
        allow_origins: Allowed origins for CORS
        allowed_hosts: Allowed hosts for DNS rebinding protection
        read_timeout: Timeout of a single HTTP request to Neo4j, in seconds
        token_limit: Optional token limit for responses
        read_only: If True, disable write operations
    """
    logger.info("Starting MCP Neo4j REST Server")
    logger.info(f"Connecting to Neo4j with URL: {db_url}")

    connection = Neo4jConnection(
        base_uri=db_url,
        user=username,
        password=password,
        streaming=streaming,
        connector=connector,
        timeout=read_timeout,
    )

    try:
        await connection.connect()
    except Neo4jConnectionError as e:
        logger.error(f"Failed to connect to Neo4j: {e}")
        sys.exit(1)

    try:
        custom_middleware = [
            Middleware(
                CORSMiddleware,
                allow_origins=allow_origins,
                allow_methods=["GET", "POST"],
                allow_headers=["*"],
            ),
            Middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts),
        ]

        mcp = create_mcp_server(
            Neo4jRest(connection), namespace, read_only, token_limit
        )

        match transport:
            case "http":
                logger.info(
                    f"Running Neo4j REST MCP Server with HTTP transport on {host}:{port}{path}"
                )
                await mcp.run_http_async(
                    host=host,
                    port=port,
                    path=path,
                    middleware=custom_middleware,
                    stateless_http=True,
                )
            case "stdio":
                logger.info("Running Neo4j REST MCP Server with stdio transport")
                await mcp.run_stdio_async()
            case "sse":
                logger.info(
                    f"Running Neo4j REST MCP Server with SSE transport on {host}:{port}{path}"
                )
                await mcp.run_http_async(
                    host=host,
                    port=port,
                    path=path,
                    middleware=custom_middleware,
                    transport="sse",
                )
            case _:
                error_msg = f"Invalid transport: {transport} | Must be 'stdio', 'sse', or 'http'"
                logger.error(error_msg)
                raise ValueError(error_msg)
    finally:
        await connection.disconnect()
