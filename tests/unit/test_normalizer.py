"""
Unit tests for registry descriptor normalization.
"""

from agentdeploy.registry.models import ServerDescriptor
from agentdeploy.registry.normalizer import (
    normalize_argument,
    normalize_key_value,
    normalize_search_response,
    normalize_server,
    normalize_transport,
)


class TestNormalizeServer:
    """Test server descriptor normalization."""

    def test_unwraps_registry_wrapper(self, npm_descriptor):
        """Test the {server, _meta} wrapper is unwrapped."""
        server = normalize_server(npm_descriptor)

        assert server.name == "io.example/filesystem"
        assert server.repository_url == "https://github.com/example/filesystem"
        assert "io.modelcontextprotocol.registry/official" in server.meta
        assert len(server.packages) == 1

    def test_camel_case_fields_mapped(self, npm_descriptor):
        """Test camelCase keys land on canonical fields."""
        package = normalize_server(npm_descriptor).packages[0]

        assert package.registry_type == "npm"
        assert package.identifier == "@example/filesystem"
        assert package.package_arguments[0].value_hint == "${input:root_dir}"
        assert package.package_arguments[1].kind == "named"
        assert package.package_arguments[1].is_secret is True
        assert [e.name for e in package.environment_variables] == ["API_TOKEN", "LOG_LEVEL"]

    def test_snake_case_fields_mapped(self):
        """Test snake_case variants are accepted too."""
        server = normalize_server(
            {
                "name": "snake",
                "packages": [
                    {
                        "registry_type": "pypi",
                        "identifier": "snake-server",
                        "runtime_hint": "uvx",
                        "runtime_arguments": [{"type": "positional", "value": "--quiet"}],
                        "environment_variables": [{"name": "X", "is_secret": True}],
                    }
                ],
            }
        )
        package = server.packages[0]

        assert package.registry_type == "pypi"
        assert package.runtime_hint == "uvx"
        assert package.runtime_arguments[0].value == "--quiet"
        assert package.environment_variables[0].is_secret is True

    def test_missing_and_null_sequences_become_empty(self):
        """Test absent or null arrays normalize to empty tuples."""
        server = normalize_server(
            {"name": "empty", "packages": None, "remotes": [{"url": "https://x", "headers": None}]}
        )

        assert server.packages == ()
        assert server.remotes[0].headers == ()

    def test_descriptor_without_install_options(self):
        """Test an entry with nothing installable still normalizes."""
        server = normalize_server({"name": "nothing"})

        assert isinstance(server, ServerDescriptor)
        assert not server.is_installable

    def test_idempotent_on_descriptor(self, npm_descriptor):
        """Test normalizing an already normalized descriptor is a no-op."""
        server = normalize_server(npm_descriptor)

        assert normalize_server(server) is server

    def test_idempotent_on_dumped_descriptor(self, npm_descriptor, remote_descriptor):
        """Test a dumped descriptor normalizes back to an equal one."""
        for raw in (npm_descriptor, remote_descriptor):
            server = normalize_server(raw)
            assert normalize_server(server.model_dump()) == server

    def test_string_repository(self):
        """Test a plain repository string is accepted."""
        server = normalize_server({"name": "x", "repository": "https://example.com/repo"})
        assert server.repository_url == "https://example.com/repo"


class TestNormalizeParts:
    """Test normalization of individual descriptor parts."""

    def test_streamable_http_maps_to_http(self, remote_descriptor):
        """Test the streamable-http alias collapses to http."""
        remote = normalize_server(remote_descriptor).remotes[0]

        assert remote.kind == "http"
        assert remote.headers[0].variables["api_key"].is_secret is True

    def test_transport_type_variants(self):
        """Test alternative transport type keys."""
        assert normalize_transport({"transportType": "SSE", "url": "u"}).kind == "sse"
        assert normalize_transport({"transport_type": "http", "url": "u"}).kind == "http"
        assert normalize_transport({"url": " https://x "}).url == "https://x"

    def test_argument_kind_inferred(self):
        """Test argument kind falls back on the presence of a name."""
        assert normalize_argument({"name": "--port"}).kind == "named"
        assert normalize_argument({"value": "x"}).kind == "positional"
        assert normalize_argument({"type": "Named", "name": "--x"}).kind == "named"

    def test_string_booleans(self):
        """Test string booleans are coerced."""
        spec = normalize_key_value({"name": " TOKEN ", "isSecret": "true", "isRequired": "no"})

        assert spec.name == "TOKEN"
        assert spec.is_secret is True
        assert spec.is_required is False

    def test_non_mapping_input(self):
        """Test garbage input normalizes to an empty part."""
        argument = normalize_argument("not a mapping")

        assert argument.kind == "positional"
        assert argument.value is None


class TestNormalizeSearchResponse:
    """Test search response normalization."""

    def test_search_page(self, npm_descriptor, remote_descriptor):
        """Test servers and cursor are extracted."""
        page = normalize_search_response(
            {
                "servers": [npm_descriptor, remote_descriptor, "junk"],
                "metadata": {"nextCursor": "abc", "count": 2},
            }
        )

        assert [s.name for s in page.servers] == ["io.example/filesystem", "io.example/weather"]
        assert page.next_cursor == "abc"
        assert page.count == 2

    def test_empty_response(self):
        """Test an empty response yields an empty page."""
        page = normalize_search_response({})

        assert page.servers == ()
        assert page.next_cursor is None
        assert page.count is None
