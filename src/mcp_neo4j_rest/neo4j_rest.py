import json
import logging
from operator import attrgetter
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
from urllib.parse import quote

from .connection import Neo4jConnection
from .exceptions import FeatureUnavailableError
from .models import (
    BatchJob,
    BatchJobResult,
    Constraint,
    CypherQuery,
    CypherQueryResult,
    EntityType,
    FullPath,
    LegacyIndex,
    Node,
    Path,
    PathAlgorithm,
    Relationship,
    RelationshipDirection,
    RelationshipSpec,
    SchemaIndex,
    ServiceRoot,
    TraversalPage,
    TraversalQuery,
    TraversalReturnType,
)

logger = logging.getLogger("mcp_neo4j_rest")
logger.setLevel(logging.INFO)

# Server major version that introduced labels, schema indexes and constraints
LABELS_VERSION = "2"

# direction -> (untyped URI accessor, typed URI template accessor) of a Node
RELATIONSHIP_DIRECTION_URIS: Dict[RelationshipDirection, tuple[Callable[[Node], Optional[str]], Callable[[Node], Optional[str]]]] = {
    RelationshipDirection.ALL: (
        attrgetter("all_relationships"),
        attrgetter("all_typed_relationships"),
    ),
    RelationshipDirection.IN: (
        attrgetter("incoming_relationships"),
        attrgetter("incoming_typed_relationships"),
    ),
    RelationshipDirection.OUT: (
        attrgetter("outgoing_relationships"),
        attrgetter("outgoing_typed_relationships"),
    ),
}

# entity type -> (service root URI accessor, legacy index URI accessor, response shape)
ENTITY_TYPES: Dict[EntityType, tuple[Callable[[ServiceRoot], str], Callable[[ServiceRoot], str], type]] = {
    EntityType.NODE: (attrgetter("node"), attrgetter("node_index"), Node),
    EntityType.RELATIONSHIP: (
        attrgetter("relationship"),
        attrgetter("relationship_index"),
        Relationship,
    ),
}

TRAVERSAL_SHAPES: Dict[TraversalReturnType, type] = {
    TraversalReturnType.NODE: Node,
    TraversalReturnType.RELATIONSHIP: Relationship,
    TraversalReturnType.PATH: Path,
    TraversalReturnType.FULLPATH: FullPath,
}


def _not_found(fail_if_not_found: bool, ok: int = 200) -> tuple[int, ...]:
    return (ok,) if fail_if_not_found else (ok, 404)


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _expand_types_template(template: str, types: List[str]) -> str:
    "Expand the `{-list|&|types}` template of typed relationship URIs."
    expanded = "&".join(_segment(t) for t in types)
    start = template.find("{")
    if start == -1:
        return f"{template}/{expanded}"
    return template[:start] + expanded


class Neo4jRest:
    """Operations of the Neo4j REST API, one HTTP exchange each unless stated otherwise."""

    def __init__(self, connection: Neo4jConnection):
        self.connection = connection

    @property
    def root(self) -> ServiceRoot:
        return self.connection.service_root

    def _require_version(self, feature: str, required: str = LABELS_VERSION) -> None:
        version = self.root.neo4j_version
        if (version or "") < required:
            raise FeatureUnavailableError(feature, required, version)

    def _warn_legacy_index(self, operation: str) -> None:
        logger.warning(
            f"{operation} uses legacy indexes, which are deprecated since Neo4j 2.0; "
            "use schema indexes and labels instead"
        )

    async def _delete(self, uri: str, fail_if_not_found: bool) -> bool:
        """DELETE a resource. Returns False when a tolerated 404 meant nothing was there."""
        response = await self.connection.send(
            "DELETE", uri, expected=_not_found(fail_if_not_found, 204)
        )
        if response.status == 404:
            logger.info(f"Nothing to delete at {uri}")
            return False
        logger.info(f"Deleted {uri}")
        return True

    def _entity_uri(self, entity_type: EntityType, entity_id: Any) -> str:
        root_uri, _, _ = ENTITY_TYPES[EntityType(entity_type)]
        return f"{root_uri(self.root)}/{_segment(entity_id)}"

    def node_uri(self, node_id: Any) -> str:
        return self._entity_uri(EntityType.NODE, node_id)

    def relationship_uri(self, relationship_id: Any) -> str:
        return self._entity_uri(EntityType.RELATIONSHIP, relationship_id)

    # Service root and Cypher

    async def get_service_root(self) -> ServiceRoot:
        """Fetch the service root again, the connection keeps the one read at connect time."""
        return await self.connection.request(
            "GET", self.connection.base_uri + "/", shape=ServiceRoot
        )

    async def run_cypher_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        include_stats: bool = False,
        profile: bool = False,
    ) -> CypherQueryResult:
        logger.info(f"Running cypher query: {query}")
        return await self.connection.request(
            "POST",
            self.root.cypher,
            body=CypherQuery(query=query, params=params or {}),
            params={"includeStats": include_stats, "profile": profile},
            shape=CypherQueryResult,
        )

    # Nodes

    async def get_node(self, node_id: Any, fail_if_not_found: bool = True) -> Optional[Node]:
        return await self.connection.request(
            "GET",
            self.node_uri(node_id),
            expected=_not_found(fail_if_not_found),
            shape=Node,
        )

    async def create_node(
        self,
        properties: Optional[Dict[str, Any]] = None,
        labels: Optional[List[str]] = None,
    ) -> Node:
        """
        Create a node, then add labels to it when some are given.

        The two steps are separate requests. When adding the labels fails the
        node stays in the graph without them; its id is logged and the error
        is raised.
        """
        if labels:
            self._require_version("Node labels")
        node = await self.connection.request(
            "POST", self.root.node, body=properties or {}, expected=(201,), shape=Node
        )
        if labels:
            try:
                await self.add_node_labels(node.id, labels)
            except Exception as e:
                logger.error(
                    f"Created node {node.id} but failed to add labels {labels}, "
                    f"the node exists without them: {e}"
                )
                raise
            # the creation response predates the labels
            node.metadata = {**node.metadata, "labels": list(labels)}
        logger.info(f"Created node {node.id}")
        return node

    async def delete_node(self, node_id: Any, fail_if_not_found: bool = True) -> bool:
        return await self._delete(self.node_uri(node_id), fail_if_not_found)

    async def get_node_relationships(
        self,
        node_id: Any,
        direction: RelationshipDirection = RelationshipDirection.ALL,
        types: Optional[List[str]] = None,
    ) -> List[Relationship]:
        node = await self.get_node(node_id)
        direction = RelationshipDirection(direction)
        untyped, typed = RELATIONSHIP_DIRECTION_URIS[direction]
        fallback = f"{node.self_uri}/relationships/{direction.value}"
        if types:
            uri = _expand_types_template(typed(node) or fallback, types)
        else:
            uri = untyped(node) or fallback
        return await self.connection.request("GET", uri, shape=List[Relationship])

    async def get_nodes_by_label(
        self,
        label: str,
        property_key: Optional[str] = None,
        property_value: Any = None,
    ) -> List[Node]:
        """List the nodes with a label, optionally filtered on one property value."""
        self._require_version("Node labels")
        params = None
        if property_key:
            # the server expects the value JSON encoded
            params = {property_key: json.dumps(property_value)}
        return await self.connection.request(
            "GET",
            f"{self.root.label}/{_segment(label)}/nodes",
            params=params,
            shape=List[Node],
        )

    async def get_all_labels(self) -> List[str]:
        self._require_version("Node labels")
        return await self.connection.request("GET", self.root.node_labels, shape=List[str])

    # Relationships

    async def get_relationship(
        self, relationship_id: Any, fail_if_not_found: bool = True
    ) -> Optional[Relationship]:
        return await self.connection.request(
            "GET",
            self.relationship_uri(relationship_id),
            expected=_not_found(fail_if_not_found),
            shape=Relationship,
        )

    async def create_relationship(
        self,
        from_node_id: Any,
        to_node_id: Any,
        type: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        body: Dict[str, Any] = {"to": self.node_uri(to_node_id), "type": type}
        if properties:
            body["data"] = properties
        relationship = await self.connection.request(
            "POST",
            f"{self.node_uri(from_node_id)}/relationships",
            body=body,
            expected=(201,),
            shape=Relationship,
        )
        logger.info(
            f"Created relationship {relationship.id} ({from_node_id})-[:{type}]->({to_node_id})"
        )
        return relationship

    async def delete_relationship(
        self, relationship_id: Any, fail_if_not_found: bool = True
    ) -> bool:
        return await self._delete(self.relationship_uri(relationship_id), fail_if_not_found)

    async def get_relationship_types(self) -> List[str]:
        return await self.connection.request(
            "GET", self.root.relationship_types, shape=List[str]
        )

    # Properties

    def _properties_uri(self, entity_type: EntityType, entity_id: Any) -> str:
        return f"{self._entity_uri(entity_type, entity_id)}/properties"

    async def get_properties(
        self, entity_type: EntityType, entity_id: Any
    ) -> Dict[str, Any]:
        properties = await self.connection.request(
            "GET",
            self._properties_uri(entity_type, entity_id),
            expected=(200, 204),
            shape=Dict[str, Any],
        )
        return properties or {}

    async def get_property(
        self,
        entity_type: EntityType,
        entity_id: Any,
        key: str,
        fail_if_not_found: bool = True,
    ) -> Any:
        return await self.connection.request(
            "GET",
            f"{self._properties_uri(entity_type, entity_id)}/{_segment(key)}",
            expected=_not_found(fail_if_not_found),
            shape=Any,
        )

    async def set_properties(
        self, entity_type: EntityType, entity_id: Any, properties: Dict[str, Any]
    ) -> None:
        """Replace all the properties of an entity."""
        await self.connection.request(
            "PUT",
            self._properties_uri(entity_type, entity_id),
            body=properties,
            expected=(204,),
        )

    async def set_property(
        self, entity_type: EntityType, entity_id: Any, key: str, value: Any
    ) -> None:
        await self.connection.request(
            "PUT",
            f"{self._properties_uri(entity_type, entity_id)}/{_segment(key)}",
            body=value,
            expected=(204,),
        )

    async def delete_properties(self, entity_type: EntityType, entity_id: Any) -> None:
        await self.connection.request(
            "DELETE", self._properties_uri(entity_type, entity_id), expected=(204,)
        )

    async def delete_property(
        self,
        entity_type: EntityType,
        entity_id: Any,
        key: str,
        fail_if_not_found: bool = True,
    ) -> bool:
        uri = f"{self._properties_uri(entity_type, entity_id)}/{_segment(key)}"
        return await self._delete(uri, fail_if_not_found)

    # Labels

    def _labels_uri(self, node_id: Any) -> str:
        return f"{self.node_uri(node_id)}/labels"

    async def add_node_labels(self, node_id: Any, labels: List[str]) -> None:
        self._require_version("Node labels")
        await self.connection.request(
            "POST", self._labels_uri(node_id), body=list(labels), expected=(204,)
        )

    async def set_node_labels(self, node_id: Any, labels: List[str]) -> None:
        """Replace all the labels of a node."""
        self._require_version("Node labels")
        await self.connection.request(
            "PUT", self._labels_uri(node_id), body=list(labels), expected=(204,)
        )

    async def delete_node_label(
        self, node_id: Any, label: str, fail_if_not_found: bool = True
    ) -> bool:
        self._require_version("Node labels")
        uri = f"{self._labels_uri(node_id)}/{_segment(label)}"
        return await self._delete(uri, fail_if_not_found)

    async def get_node_labels(self, node_id: Any) -> List[str]:
        self._require_version("Node labels")
        return await self.connection.request(
            "GET", self._labels_uri(node_id), shape=List[str]
        )

    # Schema indexes and constraints

    async def create_schema_index(self, label: str, property_key: str) -> SchemaIndex:
        self._require_version("Schema indexes")
        index = await self.connection.request(
            "POST",
            f"{self.root.schema_index}/{_segment(label)}",
            body={"property_keys": [property_key]},
            shape=SchemaIndex,
        )
        logger.info(f"Created schema index on :{label}({property_key})")
        return index

    async def get_schema_indexes(self, label: str) -> List[SchemaIndex]:
        self._require_version("Schema indexes")
        return await self.connection.request(
            "GET",
            f"{self.root.schema_index}/{_segment(label)}",
            shape=List[SchemaIndex],
        )

    async def delete_schema_index(
        self, label: str, property_key: str, fail_if_not_found: bool = True
    ) -> bool:
        self._require_version("Schema indexes")
        uri = f"{self.root.schema_index}/{_segment(label)}/{_segment(property_key)}"
        return await self._delete(uri, fail_if_not_found)

    async def create_uniqueness_constraint(
        self, label: str, property_key: str
    ) -> Constraint:
        self._require_version("Uniqueness constraints")
        constraint = await self.connection.request(
            "POST",
            f"{self.root.schema_constraint}/{_segment(label)}/uniqueness",
            body={"property_keys": [property_key]},
            shape=Constraint,
        )
        logger.info(f"Created uniqueness constraint on :{label}({property_key})")
        return constraint

    async def get_uniqueness_constraints(self, label: str) -> List[Constraint]:
        self._require_version("Uniqueness constraints")
        return await self.connection.request(
            "GET",
            f"{self.root.schema_constraint}/{_segment(label)}/uniqueness",
            shape=List[Constraint],
        )

    async def delete_uniqueness_constraint(
        self, label: str, property_key: str, fail_if_not_found: bool = True
    ) -> bool:
        self._require_version("Uniqueness constraints")
        uri = f"{self.root.schema_constraint}/{_segment(label)}/uniqueness/{_segment(property_key)}"
        return await self._delete(uri, fail_if_not_found)

    # Legacy indexes

    def _legacy_index_uri(self, entity_type: EntityType, index_name: Optional[str] = None) -> str:
        _, index_uri, _ = ENTITY_TYPES[EntityType(entity_type)]
        uri = index_uri(self.root)
        if index_name is not None:
            uri = f"{uri}/{_segment(index_name)}"
        return uri

    async def create_legacy_index(
        self,
        entity_type: EntityType,
        name: str,
        config: Optional[Dict[str, Any]] = None,
    ) -> LegacyIndex:
        """Create a legacy index, `config` holds provider settings such as {"type": "fulltext"}."""
        self._warn_legacy_index("create_legacy_index")
        body: Dict[str, Any] = {"name": name}
        if config:
            body["config"] = config
        index = await self.connection.request(
            "POST",
            self._legacy_index_uri(entity_type),
            body=body,
            expected=(201,),
            shape=LegacyIndex,
        )
        index.name = name
        return index

    async def get_legacy_indexes(self, entity_type: EntityType) -> List[LegacyIndex]:
        self._warn_legacy_index("get_legacy_indexes")
        indexes = await self.connection.request(
            "GET",
            self._legacy_index_uri(entity_type),
            expected=(200, 204),
            shape=Dict[str, LegacyIndex],
        )
        if not indexes:
            return []
        for name, index in indexes.items():
            index.name = name
        return list(indexes.values())

    async def delete_legacy_index(
        self, entity_type: EntityType, name: str, fail_if_not_found: bool = True
    ) -> bool:
        self._warn_legacy_index("delete_legacy_index")
        return await self._delete(self._legacy_index_uri(entity_type, name), fail_if_not_found)

    async def add_to_legacy_index(
        self,
        entity_type: EntityType,
        index_name: str,
        entity_id: Any,
        key: str,
        value: Any,
        unique: bool = False,
    ) -> Any:
        """
        Add an entity to a legacy index under key/value.

        With unique set, the server keeps the entity already indexed under
        key/value (uniqueness=get_or_create) and returns that one.
        """
        self._warn_legacy_index("add_to_legacy_index")
        _, _, shape = ENTITY_TYPES[EntityType(entity_type)]
        return await self.connection.request(
            "POST",
            self._legacy_index_uri(entity_type, index_name),
            body={"key": key, "value": value, "uri": self._entity_uri(entity_type, entity_id)},
            expected=(200, 201),
            params={"uniqueness": "get_or_create" if unique else None},
            shape=shape,
        )

    async def remove_from_legacy_index(
        self,
        entity_type: EntityType,
        index_name: str,
        entity_id: Any,
        key: Optional[str] = None,
        value: Any = None,
        fail_if_not_found: bool = True,
    ) -> bool:
        """Remove an entity from an index, for every key, one key, or one key/value."""
        self._warn_legacy_index("remove_from_legacy_index")
        uri = self._legacy_index_uri(entity_type, index_name)
        if key:
            uri = f"{uri}/{_segment(key)}"
            if value is not None:
                uri = f"{uri}/{_segment(value)}"
        return await self._delete(f"{uri}/{_segment(entity_id)}", fail_if_not_found)

    async def find_in_legacy_index(
        self, entity_type: EntityType, index_name: str, key: str, value: Any
    ) -> List[Any]:
        self._warn_legacy_index("find_in_legacy_index")
        _, _, shape = ENTITY_TYPES[EntityType(entity_type)]
        result = await self.connection.request(
            "GET",
            f"{self._legacy_index_uri(entity_type, index_name)}/{_segment(key)}/{_segment(value)}",
            expected=(200, 404),
            shape=List[shape],
        )
        return result or []

    async def query_legacy_index(
        self, entity_type: EntityType, index_name: str, query: str
    ) -> List[Any]:
        """Search a legacy index with the index provider's query syntax (Lucene by default)."""
        self._warn_legacy_index("query_legacy_index")
        _, _, shape = ENTITY_TYPES[EntityType(entity_type)]
        result = await self.connection.request(
            "GET",
            self._legacy_index_uri(entity_type, index_name),
            expected=(200, 404),
            params={"query": query},
            shape=List[shape],
        )
        return result or []

    # Traversals

    async def traverse(
        self,
        node_id: Any,
        query: TraversalQuery,
        return_type: TraversalReturnType = TraversalReturnType.NODE,
    ) -> List[Any]:
        return_type = TraversalReturnType(return_type)
        return await self.connection.request(
            "POST",
            f"{self.node_uri(node_id)}/traverse/{return_type.value}",
            body=query,
            shape=List[TRAVERSAL_SHAPES[return_type]],
        )

    async def iter_traversal_pages(
        self,
        node_id: Any,
        query: TraversalQuery,
        return_type: TraversalReturnType = TraversalReturnType.NODE,
        page_size: int = 50,
        lease_time: int = 60,
    ) -> AsyncIterator[TraversalPage]:
        """
        Run a paged traversal and yield its pages in order.

        The first page comes with the creation of the server side traverser,
        the following ones are read from the cursor URI of its Location header
        until the server answers 404. An empty page is still a page.

        Args:
            node_id: Start node
            query: The traversal description
            return_type: Shape of the returned items
            page_size: Number of items per page
            lease_time: Seconds the server keeps the traverser between two reads
        """
        return_type = TraversalReturnType(return_type)
        shape = List[TRAVERSAL_SHAPES[return_type]]

        first = await self.connection.send(
            "POST",
            f"{self.node_uri(node_id)}/paged/traverse/{return_type.value}",
            body=query,
            expected=(200, 201),
            params={"pageSize": page_size, "leaseTime": lease_time},
            shape=shape,
        )
        page_number = 1
        logger.debug(f"Traversal page {page_number} from node {node_id}")
        yield TraversalPage(page_number=page_number, items=first.body or [])

        cursor = first.headers.get("Location")
        if not cursor:
            return
        while True:
            items = await self.connection.request(
                "GET", cursor, expected=(200, 404), shape=shape
            )
            if items is None:
                break
            page_number += 1
            logger.debug(f"Traversal page {page_number} from node {node_id}")
            yield TraversalPage(page_number=page_number, items=items)
        logger.info(f"Paged traversal from node {node_id} returned {page_number} pages")

    # Path finding

    def _path_body(
        self,
        to_node_id: Any,
        algorithm: PathAlgorithm,
        relationships: Optional[RelationshipSpec],
        max_depth: Optional[int],
        cost_property: Optional[str],
        default_cost: Optional[float],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "to": self.node_uri(to_node_id),
            "algorithm": PathAlgorithm(algorithm).value,
            "relationships": relationships,
            "max_depth": max_depth,
            "cost_property": cost_property,
            "default_cost": default_cost,
        }
        return {key: value for key, value in body.items() if value is not None}

    async def find_path(
        self,
        from_node_id: Any,
        to_node_id: Any,
        algorithm: PathAlgorithm = PathAlgorithm.SHORTEST_PATH,
        relationships: Optional[RelationshipSpec] = None,
        max_depth: Optional[int] = None,
        cost_property: Optional[str] = None,
        default_cost: Optional[float] = None,
        fail_if_not_found: bool = False,
    ) -> Optional[Path]:
        """Find one path between two nodes, None when there is none."""
        return await self.connection.request(
            "POST",
            f"{self.node_uri(from_node_id)}/path",
            body=self._path_body(
                to_node_id, algorithm, relationships, max_depth, cost_property, default_cost
            ),
            expected=_not_found(fail_if_not_found),
            shape=Path,
        )

    async def find_paths(
        self,
        from_node_id: Any,
        to_node_id: Any,
        algorithm: PathAlgorithm = PathAlgorithm.SHORTEST_PATH,
        relationships: Optional[RelationshipSpec] = None,
        max_depth: Optional[int] = None,
        cost_property: Optional[str] = None,
        default_cost: Optional[float] = None,
    ) -> List[Path]:
        return await self.connection.request(
            "POST",
            f"{self.node_uri(from_node_id)}/paths",
            body=self._path_body(
                to_node_id, algorithm, relationships, max_depth, cost_property, default_cost
            ),
            shape=List[Path],
        )

    # Batch

    async def execute_batch(self, jobs: List[BatchJob]) -> List[BatchJobResult]:
        """Run several operations in one request, the server applies them in one transaction."""
        logger.info(f"Executing batch of {len(jobs)} jobs")
        return await self.connection.request(
            "POST", self.root.batch, body=list(jobs), shape=List[BatchJobResult]
        )
