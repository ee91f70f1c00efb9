"""Errors raised while talking to a Neo4j REST server."""

from typing import Any, Iterable, Optional


class Neo4jRestError(Exception):
    """Base class for every error raised by this package."""


class Neo4jConnectionError(Neo4jRestError):
    """The connection could not be established or is not established."""


class MalformedUriError(Neo4jConnectionError):
    """The configured base URI is not a usable http(s) URI."""

    def __init__(self, uri: Any, reason: str = "not a valid http(s) URI"):
        self.uri = uri
        super().__init__(f"Malformed Neo4j base URI '{uri}': {reason}")


class ServerUnreachableError(Neo4jConnectionError):
    """The service root could not be fetched from the server."""

    def __init__(self, uri: str, reason: str):
        self.uri = uri
        super().__init__(f"Unable to reach Neo4j server at {uri}: {reason}")


class NotConnectedError(Neo4jConnectionError):
    """An operation was attempted before connect() or after disconnect()."""

    def __init__(self):
        super().__init__("Not connected to a Neo4j server, call connect() first")


class UnexpectedStatusError(Neo4jRestError):
    """The server answered with a status code the operation does not accept."""

    def __init__(
        self,
        method: str,
        uri: str,
        status: int,
        expected: Iterable[int],
        body: Optional[str] = None,
    ):
        self.method = method
        self.uri = uri
        self.status = status
        self.expected = tuple(sorted(expected))
        self.body = body
        message = (
            f"{method} {uri} returned HTTP {status}, expected one of {list(self.expected)}"
        )
        if body:
            message += f": {body}"
        super().__init__(message)


class SerializationError(Neo4jRestError):
    """A request body could not be encoded or a response could not be decoded."""

    def __init__(self, message: str, payload: Any):
        self.payload = payload
        super().__init__(f"{message}: {payload!r}")


class FeatureUnavailableError(Neo4jRestError):
    """The connected server is older than the version an operation needs."""

    def __init__(self, feature: str, required_version: str, server_version: Optional[str]):
        self.feature = feature
        self.required_version = required_version
        self.server_version = server_version
        super().__init__(
            f"{feature} requires Neo4j {required_version} or later, "
            f"connected server reports version '{server_version or 'unknown'}'"
        )
