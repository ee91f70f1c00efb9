import argparse
import os
from unittest.mock import patch

import pytest

from mcp_neo4j_rest.utils import (
    _value_sanitize,
    format_namespace,
    parse_boolean_safely,
    process_config,
)


@pytest.fixture
def clean_env():
    """Fixture to clean environment variables before each test."""
    env_vars = [
        "NEO4J_URL",
        "NEO4J_URI",
        "NEO4J_USERNAME",
        "NEO4J_PASSWORD",
        "NEO4J_STREAMING",
        "NEO4J_CONNECTOR",
        "NEO4J_TRANSPORT",
        "NEO4J_MCP_SERVER_HOST",
        "NEO4J_MCP_SERVER_PORT",
        "NEO4J_MCP_SERVER_PATH",
        "NEO4J_MCP_SERVER_ALLOW_ORIGINS",
        "NEO4J_MCP_SERVER_ALLOWED_HOSTS",
        "NEO4J_NAMESPACE",
        "NEO4J_READ_TIMEOUT",
        "NEO4J_RESPONSE_TOKEN_LIMIT",
        "NEO4J_READ_ONLY",
    ]
    # Store original values
    original_values = {}
    for var in env_vars:
        if var in os.environ:
            original_values[var] = os.environ[var]
            del os.environ[var]

    yield

    for var in env_vars:
        os.environ.pop(var, None)
    # Restore original values
    for var, value in original_values.items():
        os.environ[var] = value


@pytest.fixture
def args_factory():
    """Factory fixture to create argparse.Namespace objects with default None values."""

    def _create_args(**kwargs):
        defaults = {
            "db_url": None,
            "username": None,
            "password": None,
            "no_streaming": False,
            "connector": None,
            "namespace": None,
            "transport": None,
            "server_host": None,
            "server_port": None,
            "server_path": None,
            "allow_origins": None,
            "allowed_hosts": None,
            "read_timeout": None,
            "token_limit": None,
            "read_only": False,
        }
        defaults.update(kwargs)
        return argparse.Namespace(**defaults)

    return _create_args


@pytest.fixture
def mock_logger():
    """Fixture to provide a mocked logger."""
    with patch("mcp_neo4j_rest.utils.logger") as mock:
        yield mock


def test_all_cli_args_provided(clean_env, args_factory):
    """Test when all CLI arguments are provided."""
    args = args_factory(
        db_url="http://test:7474/db/data",
        username="testuser",
        password="testpass",
        no_streaming=True,
        connector="bolt-bridge",
        transport="http",
        server_host="localhost",
        server_port=9000,
        server_path="/test/",
        namespace="testnamespace",
        read_timeout=120,
        token_limit=500,
        read_only=True,
    )
    config = process_config(args)

    assert config["db_url"] == "http://test:7474/db/data"
    assert config["username"] == "testuser"
    assert config["password"] == "testpass"
    assert config["streaming"] is False
    assert config["connector"] == "bolt-bridge"
    assert config["transport"] == "http"
    assert config["host"] == "localhost"
    assert config["port"] == 9000
    assert config["path"] == "/test/"
    assert config["namespace"] == "testnamespace"
    assert config["read_timeout"] == 120
    assert config["token_limit"] == 500
    assert config["read_only"] is True


def test_all_env_vars_provided(clean_env, args_factory):
    """Test when all environment variables are provided."""
    os.environ.update(
        {
            "NEO4J_URL": "http://env:7474/db/data",
            "NEO4J_USERNAME": "envuser",
            "NEO4J_PASSWORD": "envpass",
            "NEO4J_STREAMING": "false",
            "NEO4J_CONNECTOR": "envconnector",
            "NEO4J_TRANSPORT": "sse",
            "NEO4J_MCP_SERVER_HOST": "envhost",
            "NEO4J_MCP_SERVER_PORT": "8080",
            "NEO4J_MCP_SERVER_PATH": "/env/",
            "NEO4J_NAMESPACE": "envnamespace",
            "NEO4J_READ_TIMEOUT": "45",
            "NEO4J_RESPONSE_TOKEN_LIMIT": "1000",
            "NEO4J_READ_ONLY": "true",
        }
    )

    config = process_config(args_factory())

    assert config["db_url"] == "http://env:7474/db/data"
    assert config["username"] == "envuser"
    assert config["password"] == "envpass"
    assert config["streaming"] is False
    assert config["connector"] == "envconnector"
    assert config["transport"] == "sse"
    assert config["host"] == "envhost"
    assert config["port"] == 8080
    assert config["path"] == "/env/"
    assert config["namespace"] == "envnamespace"
    assert config["read_timeout"] == 45
    assert config["token_limit"] == 1000
    assert config["read_only"] is True


def test_cli_args_override_env_vars(clean_env, args_factory):
    """Test that CLI arguments take precedence over environment variables."""
    os.environ["NEO4J_URL"] = "http://env:7474/db/data"
    os.environ["NEO4J_USERNAME"] = "envuser"

    args = args_factory(db_url="http://cli:7474/db/data", username="cliuser")
    config = process_config(args)

    assert config["db_url"] == "http://cli:7474/db/data"
    assert config["username"] == "cliuser"


def test_neo4j_uri_fallback(clean_env, args_factory):
    """Test NEO4J_URI fallback when NEO4J_URL is not set."""
    os.environ["NEO4J_URI"] = "http://uri:7474/db/data"

    config = process_config(args_factory())

    assert config["db_url"] == "http://uri:7474/db/data"


def test_default_values_with_warnings(clean_env, args_factory, mock_logger):
    """Test default values are used and warnings are logged when nothing is provided."""
    config = process_config(args_factory())

    assert config["db_url"] == "http://localhost:7474/db/data"
    assert config["username"] is None
    assert config["password"] is None
    assert config["streaming"] is True
    assert config["connector"] is None
    assert config["transport"] == "stdio"
    assert config["host"] is None
    assert config["port"] is None
    assert config["path"] is None
    assert config["namespace"] == ""
    assert config["read_timeout"] == 30
    assert config["token_limit"] is None
    assert config["read_only"] is False
    assert config["allowed_hosts"] == ["localhost", "127.0.0.1"]

    # base uri and transport
    assert mock_logger.warning.call_count == 2


def test_blank_credentials_mean_no_credentials(clean_env, args_factory):
    """Blank user and password are treated as not configured."""
    os.environ["NEO4J_PASSWORD"] = ""

    config = process_config(args_factory(username=""))

    assert config["username"] is None
    assert config["password"] is None


def test_password_without_username(clean_env, args_factory):
    config = process_config(args_factory(password="secret"))

    assert config["username"] is None
    assert config["password"] == "secret"


def test_invalid_streaming_env_var(clean_env, args_factory):
    os.environ["NEO4J_STREAMING"] = "maybe"

    with pytest.raises(ValueError, match="Invalid boolean value"):
        process_config(args_factory())


def test_invalid_read_timeout_env_var_uses_default(clean_env, args_factory, mock_logger):
    os.environ["NEO4J_READ_TIMEOUT"] = "soon"

    config = process_config(args_factory())

    assert config["read_timeout"] == 30
    warnings = [call.args[0] for call in mock_logger.warning.call_args_list]
    assert any("Invalid read timeout" in msg for msg in warnings)


def test_stdio_transport_ignores_server_config(clean_env, args_factory, mock_logger):
    """Test that stdio transport ignores server host/port/path and logs warnings."""
    args = args_factory(
        transport="stdio",
        server_host="localhost",
        server_port=8000,
        server_path="/test/",
    )

    config = process_config(args)

    assert config["host"] == "localhost"  # Set but ignored
    assert config["port"] == 8000  # Set but ignored
    assert config["path"] == "/test/"  # Set but ignored

    warning_calls = [call.args[0] for call in mock_logger.warning.call_args_list]
    stdio_warnings = [
        msg for msg in warning_calls if "stdio" in msg and "ignored" in msg
    ]
    assert len(stdio_warnings) == 3  # host, port, path warnings


@pytest.mark.parametrize(
    "transport,expected_host,expected_port,expected_path",
    [
        ("stdio", None, None, None),
        ("http", "127.0.0.1", 8000, "/mcp/"),
        ("sse", "127.0.0.1", 8000, "/mcp/"),
    ],
)
def test_transport_server_defaults(
    clean_env, args_factory, transport, expected_host, expected_port, expected_path
):
    config = process_config(args_factory(transport=transport))

    assert config["transport"] == transport
    assert config["host"] == expected_host
    assert config["port"] == expected_port
    assert config["path"] == expected_path


def test_allow_origins_and_allowed_hosts_lists(clean_env, args_factory):
    os.environ["NEO4J_MCP_SERVER_ALLOWED_HOSTS"] = "example.com, test.local"

    args = args_factory(allow_origins="http://localhost:3000,https://trusted-site.com,")
    config = process_config(args)

    assert config["allow_origins"] == ["http://localhost:3000", "https://trusted-site.com"]
    assert config["allowed_hosts"] == ["example.com", "test.local"]


class TestParseBooleanSafely:
    @pytest.mark.parametrize("value", ["true", "True", " TRUE ", True])
    def test_true_values(self, value):
        assert parse_boolean_safely(value) is True

    @pytest.mark.parametrize("value", ["false", "False", " FALSE ", False])
    def test_false_values(self, value):
        assert parse_boolean_safely(value) is False

    @pytest.mark.parametrize("value", ["yes", "1", "", None, 1])
    def test_invalid_values(self, value):
        with pytest.raises(ValueError):
            parse_boolean_safely(value)


class TestFormatNamespace:
    def test_empty_string(self):
        assert format_namespace("") == ""

    def test_adds_hyphen(self):
        assert format_namespace("myapp") == "myapp-"

    def test_keeps_hyphen(self):
        assert format_namespace("myapp-") == "myapp-"


class TestValueSanitize:
    def test_drops_long_lists(self):
        row = {"name": "Alice", "embedding": list(range(200)), "tags": ["a", "b"]}

        assert _value_sanitize(row) == {"name": "Alice", "tags": ["a", "b"]}

    def test_nested_structures(self):
        value = [{"inner": {"vector": [0.1] * 128, "id": 1}}, "plain"]

        assert _value_sanitize(value) == [{"inner": {"id": 1}}, "plain"]

    def test_scalars_untouched(self):
        assert _value_sanitize(42) == 42
        assert _value_sanitize(None) is None
