"""Import table and instrumentation-library import injection.

The table maps local aliases to canonical import paths. It is filled while
the rewriter walks the top-level declarations and is consulted by the
signature analyzer to resolve qualified parameter types such as
``http.Request``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from autometrics_gen.gosyntax import (
    SourceEdit,
    indentation,
    line_end,
    line_start,
    node_text,
    unquote,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_sitter import Node

__all__ = [
    "DEFAULT_LIBRARY_ALIAS",
    "DOT_IMPORT",
    "BLANK_IMPORT",
    "ImportBlock",
    "ImportSpec",
    "ImportTable",
    "call_prefix",
    "default_package_name",
    "import_edits",
    "read_import_block",
]

DEFAULT_LIBRARY_ALIAS: Final[str] = "autometrics"
DOT_IMPORT: Final[str] = "."
BLANK_IMPORT: Final[str] = "_"
CGO_PATH: Final[str] = "C"

_MAJOR_VERSION = re.compile(r"v[0-9]+")
_GOPKG_VERSION = re.compile(r"\.v[0-9]+$")


def default_package_name(path: str) -> str:
    """Name an unaliased import binds.

    This is the last path segment, except that a trailing major version
    segment (``echo/v4``) and a ``gopkg.in`` version suffix (``yaml.v3``)
    are skipped.

    Examples
    --------
    >>> default_package_name("net/http")
    'http'
    >>> default_package_name("github.com/labstack/echo/v4")
    'echo'
    >>> default_package_name("gopkg.in/yaml.v3")
    'yaml'
    """
    segments = path.split("/")
    name = segments[-1]
    if _MAJOR_VERSION.fullmatch(name) and len(segments) > 1:
        name = segments[-2]
    return _GOPKG_VERSION.sub("", name)


def call_prefix(alias: str) -> str:
    """Qualifier for calls into a package imported as ``alias``.

    Dot and blank imports put the names in the file scope, so calls are left
    unqualified.
    """
    if alias in {DOT_IMPORT, BLANK_IMPORT}:
        return ""
    return f"{alias}."


class ImportTable:
    """Mapping from local alias to canonical import path.

    Several packages may be dot-imported, so ``.`` maps to a list. Blank
    imports are remembered for :meth:`alias_for` but never resolve.
    """

    def __init__(self) -> None:
        self._aliases: dict[str, str] = {}
        self._dot_imports: list[str] = []
        self._blank_imports: list[str] = []

    def add(self, path: str, alias: str | None = None) -> str:
        """Record an import and return the alias it binds."""
        local = alias or default_package_name(path)
        if local == DOT_IMPORT:
            self._dot_imports.append(path)
        elif local == BLANK_IMPORT:
            self._blank_imports.append(path)
        else:
            self._aliases[local] = path
        return local

    def resolve(self, alias: str) -> str | None:
        """Canonical path bound to ``alias``, if any."""
        return self._aliases.get(alias)

    def dot_imports(self) -> tuple[str, ...]:
        """Paths imported into the file scope, in source order."""
        return tuple(self._dot_imports)

    def alias_for(self, path: str) -> str | None:
        """Local alias under which ``path`` is imported, if it is."""
        for alias, canonical in self._aliases.items():
            if canonical == path:
                return alias
        if path in self._dot_imports:
            return DOT_IMPORT
        if path in self._blank_imports:
            return BLANK_IMPORT
        return None


@dataclass(frozen=True, slots=True)
class ImportSpec:
    """One ``import_spec`` node."""

    node: Node
    path: str
    alias: str | None


@dataclass(slots=True)
class ImportBlock:
    """One top-level ``import`` declaration."""

    declaration: Node
    spec_list: Node | None
    specs: list[ImportSpec] = field(default_factory=list)

    @property
    def is_cgo(self) -> bool:
        """Whether this is the special single ``import "C"`` declaration."""
        return len(self.specs) == 1 and self.specs[0].path == CGO_PATH


def read_import_block(declaration: Node, source: bytes, table: ImportTable) -> ImportBlock:
    """Read an ``import_declaration`` and record its specs in ``table``."""
    block = ImportBlock(declaration=declaration, spec_list=None)
    spec_nodes: list[Node] = []
    for child in declaration.named_children:
        if child.type == "import_spec":
            spec_nodes.append(child)
        elif child.type == "import_spec_list":
            block.spec_list = child
            spec_nodes.extend(c for c in child.named_children if c.type == "import_spec")
    for node in spec_nodes:
        path_node = node.child_by_field_name("path")
        if path_node is None:
            continue
        name_node = node.child_by_field_name("name")
        spec = ImportSpec(
            node=node,
            path=unquote(node_text(path_node, source)),
            alias=node_text(name_node, source) if name_node is not None else None,
        )
        block.specs.append(spec)
        table.add(spec.path, spec.alias)
    return block


def _is_standard(path: str) -> bool:
    return "." not in path.split("/")[0]


def _insert_before(path: str, specs: Sequence[ImportSpec]) -> ImportSpec | None:
    """Spec the new import goes in front of, None to append it."""
    if _is_standard(path):
        for spec in specs:
            if _is_standard(spec.path) and spec.path > path:
                return spec
        if any(_is_standard(spec.path) for spec in specs):
            return None
        return specs[0] if specs else None
    for spec in specs:
        if not _is_standard(spec.path) and path <= spec.path:
            return spec
    return None


def _last_standard(specs: Sequence[ImportSpec]) -> ImportSpec | None:
    standard = [spec for spec in specs if _is_standard(spec.path)]
    return standard[-1] if standard else None


def import_edits(
    blocks: Sequence[ImportBlock],
    package_clause: Node,
    source: bytes,
    paths: Sequence[str],
) -> list[SourceEdit]:
    """Edits adding an import of each of ``paths`` to the file.

    The imports go into the first declaration that is not the special
    ``import "C"`` one. Dotted paths go before the first dotted path sorting
    at or after them, standard library paths are kept with the other
    standard library imports; anything else is appended. Without such a
    declaration a new one is created right after the special import (or the
    package clause), before every other declaration.
    """
    ordered = sorted(set(paths), key=lambda path: (not _is_standard(path), path))
    if not ordered:
        return []
    anchor = package_clause
    for block in blocks:
        if block.is_cgo:
            anchor = block.declaration
            continue
        return _insert_into_block(block, source, ordered)
    if len(ordered) == 1:
        text = f'\n\nimport "{ordered[0]}"'
    else:
        text = "\n\nimport (\n" + "".join(f'\t"{path}"\n' for path in ordered) + ")"
    return [SourceEdit(anchor.end_byte, anchor.end_byte, text)]


def _insert_into_block(
    block: ImportBlock, source: bytes, paths: Sequence[str]
) -> list[SourceEdit]:
    if block.spec_list is None:
        spec = block.specs[0]
        existing = node_text(spec.node, source)
        before = [f'"{path}"' for path in paths if _insert_before(path, [spec]) is spec]
        after = [f'"{path}"' for path in paths if _insert_before(path, [spec]) is not spec]
        lines = [*before, existing, *after]
        text = "(\n" + "".join(f"\t{line}\n" for line in lines) + ")"
        return [SourceEdit(spec.node.start_byte, spec.node.end_byte, text)]

    # One edit per offset: apply_edits rejects overlapping ranges.
    inserts: dict[int, list[str]] = {}
    for path in paths:
        offset, text = _insertion(block, block.spec_list, source, path)
        inserts.setdefault(offset, []).append(text)
    return [SourceEdit(offset, offset, "".join(texts)) for offset, texts in inserts.items()]


def _insertion(
    block: ImportBlock, spec_list: Node, source: bytes, path: str
) -> tuple[int, str]:
    quoted = f'"{path}"'
    target = _insert_before(path, block.specs)
    if target is not None:
        start = line_start(source, target.node.start_byte)
        if source[start : target.node.start_byte].strip():
            return target.node.start_byte, f"{quoted}\n\t"
        return start, f"{indentation(source, target.node)}{quoted}\n"

    close = spec_list.children[-1]
    last = _last_standard(block.specs) if _is_standard(path) else None
    end = line_end(source, last.node.end_byte) if last is not None else len(source)
    if last is not None and last is not block.specs[-1] and end < close.start_byte:
        indent = indentation(source, last.node) or "\t"
        return end + 1, f"{indent}{quoted}\n"

    indent = (indentation(source, block.specs[-1].node) if block.specs else "") or "\t"
    start = line_start(source, close.start_byte)
    if source[start : close.start_byte].strip():
        return close.start_byte, f"\n{indent}{quoted}\n"
    return start, f"{indent}{quoted}\n"
