from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


def entity_id_from_uri(uri: str) -> str:
    "Return the path segment following the last '/' of an entity URI."
    return uri.rsplit("/", 1)[-1]


class RelationshipDirection(str, Enum):
    ALL = "all"
    IN = "in"
    OUT = "out"


class EntityType(str, Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"


class TraversalReturnType(str, Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"
    PATH = "path"
    FULLPATH = "fullpath"


class PathAlgorithm(str, Enum):
    SHORTEST_PATH = "shortestPath"
    ALL_SIMPLE_PATHS = "allSimplePaths"
    ALL_PATHS = "allPaths"
    DIJKSTRA = "dijkstra"


class ServiceRoot(BaseModel):
    """Capability URIs advertised by the server at its REST root.

    Servers before 2.0 do not advertise label, schema or relationship URIs, so
    those are derived from the base URI that precedes the `node` endpoint.

    Example:
    {
        "node": "http://localhost:7474/db/data/node",
        "node_index": "http://localhost:7474/db/data/index/node",
        "relationship_index": "http://localhost:7474/db/data/index/relationship",
        "relationship_types": "http://localhost:7474/db/data/relationship/types",
        "batch": "http://localhost:7474/db/data/batch",
        "cypher": "http://localhost:7474/db/data/cypher",
        "neo4j_version": "2.0.0"
    }
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    extensions: dict[str, Any] = Field(default_factory=dict)
    node: str
    node_index: str
    relationship_index: str
    relationship_types: str
    batch: str
    cypher: str
    extensions_info: str | None = None
    reference_node: str | None = None
    transaction: str | None = None
    node_labels: str | None = None
    neo4j_version: str | None = None

    # not advertised by the server, always derived
    relationship: str | None = None
    label: str | None = None
    schema_index: str | None = None
    schema_constraint: str | None = None

    @model_validator(mode="after")
    def synthesize_missing_uris(self) -> "ServiceRoot":
        "Fill in the URIs the server does not report."
        base = self.base_uri
        if self.relationship is None:
            self.relationship = f"{base}/relationship"
        if self.label is None:
            self.label = f"{base}/label"
        if self.node_labels is None:
            self.node_labels = f"{base}/labels"
        if self.schema_index is None:
            self.schema_index = f"{base}/schema/index"
        if self.schema_constraint is None:
            self.schema_constraint = f"{base}/schema/constraint"
        return self

    @property
    def base_uri(self) -> str:
        return self.node.rsplit("/", 1)[0]


class Entity(BaseModel):
    "Any server object identified by a `self` URI."

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    self_uri: str = Field(alias="self", description="The URI of the entity.")
    id: str | None = Field(
        default=None,
        description="Local identifier, the last path segment of the `self` URI.",
    )
    data: dict[str, Any] = Field(
        default_factory=dict, description="The properties of the entity."
    )
    metadata: dict[str, Any] = Field(default_factory=dict)
    properties: str | None = None
    property: str | None = None


class Node(Entity):
    """A Neo4j node as represented by the REST API.

    Example:
    {
        "self": "http://localhost:7474/db/data/node/42",
        "data": {"name": "Alice"},
        "metadata": {"id": 42, "labels": ["Person"]}
    }
    """

    all_relationships: str | None = None
    incoming_relationships: str | None = None
    outgoing_relationships: str | None = None
    all_typed_relationships: str | None = None
    incoming_typed_relationships: str | None = None
    outgoing_typed_relationships: str | None = None
    create_relationship: str | None = None
    labels: str | None = None
    traverse: str | None = None
    paged_traverse: str | None = None


class Relationship(Entity):
    """A Neo4j relationship as represented by the REST API.

    Example:
    {
        "self": "http://localhost:7474/db/data/relationship/7",
        "start": "http://localhost:7474/db/data/node/42",
        "end": "http://localhost:7474/db/data/node/43",
        "type": "KNOWS",
        "data": {"since": 2010}
    }
    """

    start: str
    end: str
    type: str


class Path(BaseModel):
    "A path whose nodes and relationships are given as URIs."

    model_config = ConfigDict(extra="allow")

    start: str
    end: str
    length: int
    nodes: list[str] = Field(default_factory=list)
    relationships: list[str] = Field(default_factory=list)
    directions: list[str] | None = None
    weight: float | None = None


class FullPath(BaseModel):
    "A path carrying full node and relationship representations."

    model_config = ConfigDict(extra="allow")

    start: str | Node
    end: str | Node
    length: int
    nodes: list[Node] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    directions: list[str] | None = None
    weight: float | None = None


class CypherQuery(BaseModel):
    query: str = Field(description="The Cypher query to execute.", min_length=1)
    params: dict[str, Any] = Field(
        default_factory=dict, description="The parameters of the query."
    )


class CypherQueryResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    columns: list[str] = Field(default_factory=list)
    data: list[list[Any]] = Field(default_factory=list)
    stats: dict[str, Any] | None = None
    plan: dict[str, Any] | None = None


class SchemaIndex(BaseModel):
    model_config = ConfigDict(extra="allow")

    label: str
    property_keys: list[str] = Field(default_factory=list)


class Constraint(BaseModel):
    model_config = ConfigDict(extra="allow")

    label: str
    type: str = "UNIQUENESS"
    property_keys: list[str] = Field(default_factory=list)


class LegacyIndex(BaseModel):
    "A pre-2.0 manual index. The server reports it without its name."

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    template: str | None = None
    provider: str | None = None
    type: str | None = None


class RelationshipSpec(BaseModel):
    "A relationship type and direction to follow."

    type: str = Field(description="The relationship type.", min_length=1)
    direction: RelationshipDirection = Field(
        default=RelationshipDirection.ALL,
        description="The direction to follow, seen from the current node.",
    )


class Evaluator(BaseModel):
    """A prune evaluator or return filter for a traversal.

    Builtin evaluators are referenced by name (`all`, `all_but_start_node`,
    `none`), scripts are given as a javascript body.
    """

    language: Literal["builtin", "javascript"] = "builtin"
    name: str | None = None
    body: str | None = None


class TraversalQuery(BaseModel):
    """Description of a graph walk starting from one node.

    Example:
    {
        "order": "breadth_first",
        "uniqueness": "node_global",
        "relationships": [{"type": "KNOWS", "direction": "out"}],
        "return_filter": {"language": "builtin", "name": "all_but_start_node"},
        "max_depth": 2
    }
    """

    order: Literal["breadth_first", "depth_first"] = "breadth_first"
    uniqueness: (
        Literal[
            "node_global",
            "none",
            "relationship_global",
            "node_path",
            "relationship_path",
        ]
        | None
    ) = "node_global"
    relationships: list[RelationshipSpec] = Field(default_factory=list)
    prune_evaluator: Evaluator | None = None
    return_filter: Evaluator | None = None
    max_depth: int | None = Field(default=None, ge=1)


class TraversalPage(BaseModel):
    page_number: int = Field(description="1-based position of the page.")
    items: list[Any] = Field(default_factory=list)


class BatchJob(BaseModel):
    """One operation of a batch request.

    `body_entries` exists for callers that can only provide flat key/value
    pairs; when it is non-empty it becomes the body of the job.

    Example:
    {"id": 0, "method": "POST", "to": "/node", "body": {"name": "Alice"}}
    """

    id: int | None = Field(default=None, description="Job identifier, referable as {id}.")
    method: Literal["GET", "POST", "PUT", "DELETE"]
    to: str = Field(description="Target URI, relative to the service root.")
    body: Any = None
    body_entries: dict[str, Any] | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def apply_body_entries(self) -> "BatchJob":
        if self.body_entries:
            self.body = dict(self.body_entries)
        return self


class BatchJobResult(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int | None = None
    from_uri: str | None = Field(default=None, alias="from")
    location: str | None = None
    body: Any = None
    status: int | None = None
