"""
Unit tests for placeholder scanning and substitution.
"""

import pytest

from agentdeploy.compiler.placeholders import (
    HEADER_SYNTAX,
    PlaceholderSyntax,
    canonicalize,
    has_placeholder,
    input_token,
    placeholder_ids,
    sanitize_id,
    scan_placeholders,
    substitute,
)


class TestScanPlaceholders:
    """Test placeholder scanning."""

    def test_canonical_tokens_in_order(self):
        """Test canonical tokens are found left to right."""
        tokens = scan_placeholders("--dir=${input:root} --token ${input:api_token}")

        assert [t.id for t in tokens] == ["root", "api_token"]
        assert all(t.syntax is PlaceholderSyntax.INPUT for t in tokens)

    def test_escaped_token_flagged(self):
        """Test an escaped token is reported as escaped."""
        tokens = scan_placeholders("literal \\${input:x} and ${input:y}")

        assert tokens[0].escaped is True
        assert tokens[1].escaped is False
        assert placeholder_ids("literal \\${input:x} and ${input:y}") == ["y"]

    def test_field_syntax_ignores_header_forms(self):
        """Test ${id} and {id} are ignored outside header templates."""
        assert placeholder_ids("${HOME}/{dir}") == []
        assert placeholder_ids("${HOME}/{dir}", HEADER_SYNTAX) == ["HOME", "dir"]

    def test_ids_deduplicated(self):
        """Test repeated ids are reported once."""
        assert placeholder_ids("${input:a}${input:b}${input:a}") == ["a", "b"]

    @pytest.mark.parametrize("text", [None, "", "no placeholders", "${input:}"])
    def test_nothing_found(self, text):
        """Test texts without usable placeholders."""
        assert placeholder_ids(text) == []
        assert not has_placeholder(text)


class TestCanonicalize:
    """Test header template canonicalization."""

    def test_brace_and_dollar_forms(self):
        """Test both header forms become canonical tokens."""
        assert canonicalize("Bearer {api_key}") == "Bearer ${input:api_key}"
        assert canonicalize("Token ${TOKEN}") == "Token ${input:TOKEN}"

    def test_canonical_tokens_untouched(self):
        """Test existing canonical tokens are kept as-is."""
        assert canonicalize("Bearer ${input:key}") == "Bearer ${input:key}"


class TestSubstitute:
    """Test placeholder substitution."""

    def test_substitutes_every_token(self):
        """Test each token is replaced through the resolver."""
        values = {"a": "1", "b": "2"}
        assert substitute("${input:a}-${input:b}-${input:a}", values.__getitem__) == "1-2-1"

    def test_escaped_token_emitted_literally(self):
        """Test an escaped token becomes the unescaped literal."""
        result = substitute("keep \\${input:x}", lambda input_id: "WRONG")
        assert result == "keep ${input:x}"

    def test_input_token(self):
        """Test canonical token construction."""
        assert input_token("root") == "${input:root}"


class TestSanitizeId:
    """Test id sanitization."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("--api-key", "api_key"),
            ("-v", "v"),
            ("X-Custom Header", "X_Custom_Header"),
            ("plain", "plain"),
        ],
    )
    def test_sanitize(self, value, expected):
        """Test flag and header names become ids."""
        assert sanitize_id(value) == expected
