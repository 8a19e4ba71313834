"""
Placeholder scanning and substitution.

Three token syntaxes exist:

- ``${input:<id>}`` is the canonical placeholder. Its escaped form
  ``\\${input:<id>}`` is a literal and is never treated as a placeholder.
- ``${<id>}`` and ``{<id>}`` appear only inside remote header templates.

Every component that looks for placeholders goes through ``scan_placeholders``
with the set of syntaxes legal for the field being scanned.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Flag, auto


class PlaceholderSyntax(Flag):
    """Placeholder syntaxes recognized in a field."""

    INPUT = auto()
    DOLLAR = auto()
    BRACE = auto()


FIELD_SYNTAX = PlaceholderSyntax.INPUT
HEADER_SYNTAX = PlaceholderSyntax.INPUT | PlaceholderSyntax.DOLLAR | PlaceholderSyntax.BRACE

# Alternation order matters: ${input:..} before ${..} before {..}
_TOKEN_PATTERN = re.compile(
    r"(?P<escape>\\)?\$\{input:(?P<input>[^}]+)\}"
    r"|\$\{(?P<dollar>[^{}]+)\}"
    r"|\{(?P<brace>[^{}]+)\}"
)


@dataclass(frozen=True)
class PlaceholderToken:
    """One placeholder occurrence inside a text field."""

    id: str
    start: int
    end: int
    syntax: PlaceholderSyntax
    escaped: bool = False


def input_token(input_id: str) -> str:
    """Return the canonical placeholder text for an input id."""
    return "${input:" + input_id + "}"


def scan_placeholders(
    text: str | None, syntax: PlaceholderSyntax = FIELD_SYNTAX
) -> list[PlaceholderToken]:
    """
    Scan text left to right for placeholder tokens.

    Escaped ``${input:..}`` tokens are returned with ``escaped=True`` so
    callers can skip them; tokens of a syntax not in ``syntax`` are dropped.

    Args:
        text: Text to scan
        syntax: Syntaxes legal for this field

    Returns:
        Tokens in order of appearance
    """
    if not text:
        return []

    tokens = []
    for match in _TOKEN_PATTERN.finditer(text):
        if match.group("input") is not None:
            kind = PlaceholderSyntax.INPUT
            raw_id = match.group("input")
        elif match.group("dollar") is not None:
            kind = PlaceholderSyntax.DOLLAR
            raw_id = match.group("dollar")
        else:
            kind = PlaceholderSyntax.BRACE
            raw_id = match.group("brace")

        if not kind & syntax:
            continue

        tokens.append(
            PlaceholderToken(
                id=raw_id.strip(),
                start=match.start(),
                end=match.end(),
                syntax=kind,
                escaped=bool(match.group("escape")),
            )
        )
    return tokens


def placeholder_ids(
    text: str | None, syntax: PlaceholderSyntax = FIELD_SYNTAX
) -> list[str]:
    """Return distinct non-escaped placeholder ids in order of first appearance."""
    seen: list[str] = []
    for token in scan_placeholders(text, syntax):
        if token.escaped or not token.id or token.id in seen:
            continue
        seen.append(token.id)
    return seen


def has_placeholder(text: str | None) -> bool:
    """Whether text contains at least one canonical, non-escaped placeholder."""
    return bool(placeholder_ids(text, PlaceholderSyntax.INPUT))


def canonicalize(text: str, syntax: PlaceholderSyntax = HEADER_SYNTAX) -> str:
    """Rewrite ``${id}`` and ``{id}`` tokens into ``${input:id}``."""
    parts = []
    position = 0
    for token in scan_placeholders(text, syntax):
        if token.syntax is PlaceholderSyntax.INPUT or not token.id:
            continue
        parts.append(text[position:token.start])
        parts.append(input_token(token.id))
        position = token.end
    parts.append(text[position:])
    return "".join(parts)


def substitute(text: str, resolver: Callable[[str], str]) -> str:
    """
    Replace every canonical placeholder with ``resolver(id)``.

    Escaped tokens are emitted as the unescaped literal ``${input:id}``.
    A token with an empty id is removed.

    Args:
        text: Text containing canonical placeholders
        resolver: Maps an input id to its replacement text

    Returns:
        Substituted text
    """
    parts = []
    position = 0
    for token in scan_placeholders(text, PlaceholderSyntax.INPUT):
        parts.append(text[position:token.start])
        if token.escaped:
            parts.append(text[token.start + 1:token.end])
        elif token.id:
            parts.append(resolver(token.id))
        position = token.end
    parts.append(text[position:])
    return "".join(parts)


def sanitize_id(value: str) -> str:
    """Derive an input id from a field name: drop leading dashes, collapse non-word runs."""
    value = re.sub(r"^--?", "", value)
    return re.sub(r"[^a-zA-Z0-9_]+", "_", value)
