"""Tree-sitter helpers for Go sources.

The rewriter never re-prints a syntax tree. It parses the file with the
tree-sitter Go grammar to locate declarations, comments and statements, and
then splices replacement text into the original byte buffer. Everything the
rewriter does not own (comments, blank lines, formatting) therefore
round-trips byte for byte.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import import_module
from typing import TYPE_CHECKING, Final

from tree_sitter import Language, Node, Parser, Tree

from autometrics_gen.errors import ConfigError, ParseError

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "FUNCTION_NODE_TYPES",
    "GRAMMAR_PACKAGE",
    "SourceEdit",
    "apply_edits",
    "attached_comments",
    "body_statements",
    "first_error",
    "indentation",
    "line_end",
    "line_start",
    "load_language",
    "node_text",
    "parse_source",
    "unquote",
]

GRAMMAR_PACKAGE: Final[str] = "tree_sitter_go"
FUNCTION_NODE_TYPES: Final[frozenset[str]] = frozenset(
    {"function_declaration", "method_declaration"}
)


@lru_cache(maxsize=1)
def load_language() -> Language:
    """Load the Go grammar.

    Returns
    -------
    Language
        Instantiated Tree-sitter ``Language`` ready for parsing.

    Raises
    ------
    ConfigError
        If the grammar package is missing or does not expose ``language()``.
    """
    try:
        module = import_module(GRAMMAR_PACKAGE)
    except ModuleNotFoundError as exc:  # pragma: no cover - configuration error
        message = f"Tree-sitter package '{GRAMMAR_PACKAGE}' is not installed"
        raise ConfigError(message, cause=exc) from exc
    factory = getattr(module, "language", None)
    if not callable(factory):  # pragma: no cover - configuration error
        message = f"Tree-sitter package '{GRAMMAR_PACKAGE}' does not expose language()"
        raise ConfigError(message)
    return Language(factory())


def first_error(node: Node) -> Node | None:
    """Return the first ``ERROR`` or missing node under ``node`` in source order."""
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = first_error(child)
        if found is not None:
            return found
    return None


def parse_source(data: bytes) -> Tree:
    """Parse Go source bytes.

    Parameters
    ----------
    data : bytes
        UTF-8 encoded Go source.

    Returns
    -------
    Tree
        Syntax tree without error nodes.

    Raises
    ------
    ParseError
        If the file is not valid UTF-8 or the grammar reports a syntax
        error anywhere in it.
    """
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        message = f"invalid UTF-8 at byte {exc.start}"
        raise ParseError(message, cause=exc, context={"offset": exc.start}) from exc
    parser = Parser(load_language())
    tree = parser.parse(data)
    error = first_error(tree.root_node)
    if error is not None:
        row, column = error.start_point
        message = f"syntax error at line {row + 1}, column {column + 1}"
        raise ParseError(message, context={"line": row + 1, "column": column + 1})
    return tree


def node_text(node: Node, source: bytes) -> str:
    """Return the source text spanned by ``node``."""
    return source[node.start_byte : node.end_byte].decode("utf-8")


def unquote(literal: str) -> str:
    """Strip the quotes of an interpreted or raw Go string literal."""
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in "\"`":
        return literal[1:-1]
    return literal


def line_start(source: bytes, offset: int) -> int:
    """Offset of the first byte of the line containing ``offset``."""
    return source.rfind(b"\n", 0, offset) + 1


def line_end(source: bytes, offset: int) -> int:
    """Offset of the newline ending the line containing ``offset`` (or EOF)."""
    index = source.find(b"\n", offset)
    return len(source) if index == -1 else index


def indentation(source: bytes, node: Node) -> str:
    """Leading whitespace of the line ``node`` starts on."""
    start = line_start(source, node.start_byte)
    line = source[start : node.start_byte]
    stripped = line.lstrip(b" \t")
    return line[: len(line) - len(stripped)].decode("utf-8")


def body_statements(block: Node) -> list[Node]:
    """Top-level statements of a function body, comments excluded.

    Newer grammar releases wrap the statements in a ``statement_list`` node;
    older ones put them directly under the block.
    """
    statements: list[Node] = []
    for child in block.named_children:
        if child.type == "statement_list":
            statements.extend(c for c in child.named_children if c.type != "comment")
        elif child.type != "comment":
            statements.append(child)
    return statements


def attached_comments(declaration: Node) -> list[Node]:
    """Comment nodes attached to ``declaration``.

    The attached comments are the contiguous run of comments ending on the
    line right above the declaration, with no blank line between them, and
    not trailing another declaration on the same line.
    """
    comments: list[Node] = []
    expected_row = declaration.start_point[0] - 1
    sibling = declaration.prev_named_sibling
    while sibling is not None and sibling.type == "comment":
        if sibling.end_point[0] != expected_row:
            break
        previous = sibling.prev_named_sibling
        if (
            previous is not None
            and previous.type != "comment"
            and previous.end_point[0] == sibling.start_point[0]
        ):
            break
        comments.append(sibling)
        expected_row = sibling.start_point[0] - 1
        sibling = previous
    comments.reverse()
    return comments


@dataclass(frozen=True, slots=True)
class SourceEdit:
    """Replacement of the byte range ``[start, end)`` of the original source."""

    start: int
    end: int
    text: str


def apply_edits(source: bytes, edits: Iterable[SourceEdit]) -> bytes:
    """Apply non-overlapping edits to ``source`` in a single pass.

    Raises
    ------
    ValueError
        If two edits overlap.
    """
    ordered = sorted(edits, key=lambda edit: (edit.start, edit.end))
    pieces: list[bytes] = []
    cursor = 0
    for edit in ordered:
        if edit.start < cursor:
            message = f"overlapping edits at byte {edit.start}"
            raise ValueError(message)
        pieces.append(source[cursor : edit.start])
        pieces.append(edit.text.encode("utf-8"))
        cursor = edit.end
    pieces.append(source[cursor:])
    return b"".join(pieces)
