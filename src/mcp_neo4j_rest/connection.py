"""HTTP session handling and request/response marshalling for the Neo4j REST API."""

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Collection, Iterable, Mapping, NamedTuple, Optional, Tuple, Union
from urllib.parse import urlencode, urlparse

import aiohttp
from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .exceptions import (
    MalformedUriError,
    NotConnectedError,
    SerializationError,
    ServerUnreachableError,
    UnexpectedStatusError,
)
from .models import Entity, ServiceRoot, entity_id_from_uri

logger = logging.getLogger("mcp_neo4j_rest")
logger.setLevel(logging.INFO)

DEFAULT_BASE_URI = "http://localhost:7474/db/data"

# statuses that never carry a body worth decoding
NO_BODY_STATUSES = frozenset({204, 404})

METHODS_WITH_BODY = frozenset({"POST", "PUT", "PATCH"})

QueryParams = Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]


class RestResponse(NamedTuple):
    status: int
    headers: Mapping[str, str]
    body: Any


@dataclass
class _Session:
    """State that only exists while connected."""

    http: aiohttp.ClientSession
    service_root: ServiceRoot


def build_authorization(user: Optional[str], password: Optional[str]) -> Optional[str]:
    """
    Build the value of the HTTP Basic Authorization header.

    Both values are trimmed and a blank one counts as not configured. A missing
    user or password is sent as an empty string. When neither is configured
    there are no credentials and None is returned.
    """
    user = (user or "").strip() or None
    password = (password or "").strip() or None
    if user is None and password is None:
        return None
    credentials = f"{user or ''}:{password or ''}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def validate_base_uri(uri: Any) -> str:
    """Check that uri is an absolute http(s) URI and return it without a trailing slash."""
    if not isinstance(uri, str) or not uri.strip():
        raise MalformedUriError(uri, "empty URI")
    try:
        parsed = urlparse(uri.strip())
        # accessing the port validates it
        parsed.port
    except ValueError as e:
        raise MalformedUriError(uri, str(e)) from e
    if parsed.scheme not in ("http", "https"):
        raise MalformedUriError(uri, f"unsupported scheme '{parsed.scheme}'")
    if not parsed.hostname:
        raise MalformedUriError(uri, "missing host")
    return uri.strip().rstrip("/")


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_uri(uri: str, params: QueryParams = None, connector: Optional[str] = None) -> str:
    """
    Append query parameters to a URI.

    Parameters with a blank name or a None value are dropped. When a connector
    name is configured it is appended as the `connector` parameter.
    """
    if params is None:
        pairs = []
    elif isinstance(params, Mapping):
        pairs = list(params.items())
    else:
        pairs = list(params)

    query = [
        (name, _format_param(value))
        for name, value in pairs
        if name and name.strip() and value is not None
    ]
    if connector:
        query.append(("connector", connector))

    if not query:
        return uri
    separator = "&" if "?" in uri else "?"
    return uri + separator + urlencode(query)


@lru_cache(maxsize=None)
def _adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


def _patch_entity_ids(value: Any) -> None:
    """Attach the local identifier derived from `self` to every entity in value."""
    if isinstance(value, list):
        for item in value:
            _patch_entity_ids(item)
    elif isinstance(value, BaseModel):
        if isinstance(value, Entity):
            value.id = entity_id_from_uri(value.self_uri)
        for name in type(value).model_fields:
            field_value = getattr(value, name)
            if isinstance(field_value, (list, BaseModel)):
                _patch_entity_ids(field_value)


def encode_body(body: Any) -> str:
    try:
        return json.dumps(to_jsonable_python(body, by_alias=True, exclude_none=True))
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError(f"Unable to serialize request body ({e})", body) from e


def decode_body(text: str, shape: Any) -> Any:
    """Decode a JSON response into shape and patch entity identifiers."""
    try:
        data = json.loads(text)
    except ValueError as e:
        raise SerializationError(f"Response is not valid JSON ({e})", text) from e
    try:
        result = _adapter(shape).validate_python(data)
    except ValidationError as e:
        raise SerializationError(
            f"Response does not match {getattr(shape, '__name__', shape)} ({e.error_count()} errors)",
            text,
        ) from e
    _patch_entity_ids(result)
    return result


class Neo4jConnection:
    """
    A connection to one Neo4j server.

    Holds the configuration and, once connected, the HTTP client session and the
    service root. Every request goes through send(), which normalizes the
    status handling and (de)serialization of a single exchange.

    Args:
        base_uri: Base URI of the REST API, without a trailing slash
        user: User for HTTP Basic authentication
        password: Password for HTTP Basic authentication
        streaming: Value of the X-Stream header
        connector: Optional outbound connector name added to every request
        timeout: Total timeout in seconds of a single HTTP request
    """

    def __init__(
        self,
        base_uri: str = DEFAULT_BASE_URI,
        user: Optional[str] = None,
        password: Optional[str] = None,
        streaming: bool = True,
        connector: Optional[str] = None,
        timeout: Optional[float] = 30,
    ):
        self.base_uri = base_uri
        self._user = user
        self._password = password
        self.streaming = streaming
        self.connector = connector
        self.timeout = timeout
        self._authorization = build_authorization(user, password)
        self._session: Optional[_Session] = None

    @property
    def user(self) -> Optional[str]:
        return self._user

    @user.setter
    def user(self, value: Optional[str]) -> None:
        self._user = value
        self._authorization = build_authorization(self._user, self._password)

    @property
    def password(self) -> Optional[str]:
        return self._password

    @password.setter
    def password(self, value: Optional[str]) -> None:
        self._password = value
        self._authorization = build_authorization(self._user, self._password)

    @property
    def authorization(self) -> Optional[str]:
        return self._authorization

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def service_root(self) -> ServiceRoot:
        if self._session is None:
            raise NotConnectedError()
        return self._session.service_root

    def _headers(self, with_body: bool) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "X-Stream": "true" if self.streaming else "false",
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        if self._authorization:
            headers["Authorization"] = self._authorization
        return headers

    async def connect(self) -> ServiceRoot:
        """
        Validate the base URI and fetch the service root.

        Raises:
            MalformedUriError: base_uri is not an http(s) URI, nothing was sent
            ServerUnreachableError: the service root could not be fetched
        """
        base_uri = validate_base_uri(self.base_uri)
        if self._session is not None:
            await self.disconnect()

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        http = aiohttp.ClientSession(timeout=timeout)
        root_uri = base_uri + "/"
        try:
            response = await self._exchange(
                http, "GET", root_uri, expected=(200,), shape=ServiceRoot
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, UnexpectedStatusError, SerializationError) as e:
            await http.close()
            logger.error(f"Failed to fetch the Neo4j service root from {root_uri}: {e}")
            raise ServerUnreachableError(root_uri, str(e) or type(e).__name__) from e
        except BaseException:
            await http.close()
            raise

        if response.body is None:
            await http.close()
            raise ServerUnreachableError(root_uri, f"HTTP {response.status} without service root")

        self.base_uri = base_uri
        self._session = _Session(http=http, service_root=response.body)
        logger.info(
            f"Connected to Neo4j {response.body.neo4j_version or '(unknown version)'} at {base_uri}"
        )
        return response.body

    async def disconnect(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        await session.http.close()
        logger.info(f"Disconnected from Neo4j at {self.base_uri}")

    async def _exchange(
        self,
        http: aiohttp.ClientSession,
        method: str,
        uri: str,
        body: Any = None,
        expected: Collection[int] = (200,),
        params: QueryParams = None,
        shape: Any = None,
    ) -> RestResponse:
        method = method.upper()
        with_body = method in METHODS_WITH_BODY and body is not None
        data = encode_body(body) if with_body else None
        target = build_uri(uri, params, self.connector)

        logger.debug(f"{method} {target} {data or ''}")
        async with http.request(
            method, target, data=data, headers=self._headers(with_body)
        ) as response:
            status = response.status
            text = await response.text()
            headers = response.headers.copy()
        logger.debug(f"{method} {target} -> {status}")

        if status not in expected:
            raise UnexpectedStatusError(method, target, status, expected, text)
        if status in NO_BODY_STATUSES or shape is None:
            return RestResponse(status, headers, None)
        return RestResponse(status, headers, decode_body(text, shape))

    async def send(
        self,
        method: str,
        uri: str,
        body: Any = None,
        expected: Collection[int] = (200,),
        params: QueryParams = None,
        shape: Any = None,
    ) -> RestResponse:
        """
        Issue one request and normalize its outcome.

        Args:
            method: HTTP method
            uri: Absolute target URI
            body: Request body, serialized to JSON for POST, PUT and PATCH only
            expected: Acceptable status codes
            params: Query parameters, blank names and None values are dropped
            shape: Type the JSON body is validated into, None when no body is expected

        Returns:
            RestResponse whose body is None for 204 and 404 responses

        Raises:
            UnexpectedStatusError: the status is not in expected
            SerializationError: the body could not be encoded or decoded
        """
        if self._session is None:
            raise NotConnectedError()
        return await self._exchange(
            self._session.http, method, uri, body, expected, params, shape
        )

    async def request(
        self,
        method: str,
        uri: str,
        body: Any = None,
        expected: Collection[int] = (200,),
        params: QueryParams = None,
        shape: Any = None,
    ) -> Any:
        """Same as send() but only returns the decoded body."""
        response = await self.send(method, uri, body, expected, params, shape)
        return response.body
