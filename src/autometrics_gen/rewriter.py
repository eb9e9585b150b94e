"""File rewriter: instrument every annotated function of a Go source file.

The rewriter parses the file once, walks its top-level declarations in
order and collects byte-range edits against the original buffer: imports are
read first (they precede functions in Go), then each function's generated
documentation region and statements are stripped and, for annotated
functions, regenerated. The edits are applied in a single pass and the file
is replaced atomically, so an error anywhere leaves it untouched.

Examples
--------
>>> from pathlib import Path
>>> from autometrics_gen.rewriter import FileRewriter
>>> from autometrics_gen.settings import GeneratorConfig
>>> rewriter = FileRewriter(GeneratorConfig(file_path=Path("main.go")))
>>> result = rewriter.rewrite_source(b"package main\\n\\nfunc main() {}\\n")
>>> result.changed
False
"""

from __future__ import annotations

import os
import stat
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from autometrics_gen.comments import insert_documentation, strip_documentation
from autometrics_gen.directive import Directive, find_directive, parse_directive, validate
from autometrics_gen.errors import DirectiveError, GeneratorError, ParseError, SourceIOError
from autometrics_gen.gosyntax import (
    FUNCTION_NODE_TYPES,
    SourceEdit,
    apply_edits,
    attached_comments,
    indentation,
    line_start,
    node_text,
    parse_source,
)
from autometrics_gen.imports import (
    DEFAULT_LIBRARY_ALIAS,
    ImportBlock,
    ImportTable,
    call_prefix,
    import_edits,
    read_import_block,
)
from autometrics_gen.links import PrometheusLinks
from autometrics_gen.logging import get_logger, with_fields
from autometrics_gen.metrics import FUNCTIONS_TOTAL, observe_rewrite
from autometrics_gen.signature import analyze_parameters, error_return_pointer
from autometrics_gen.statements import exit_statement, prologue_statement, rewrite_body

if TYPE_CHECKING:
    from tree_sitter import Node

    from autometrics_gen.logging import LoggerAdapter
    from autometrics_gen.settings import GeneratorConfig

__all__ = [
    "FileRewriter",
    "FunctionReport",
    "RewriteResult",
    "rewrite_file",
    "rewrite_source",
]

logger = get_logger(__name__)

TIME_PACKAGE: Final[str] = "time"

INSTRUMENTED: Final[str] = "instrumented"
CLEANED: Final[str] = "cleaned"
UNCHANGED: Final[str] = "unchanged"


@dataclass(frozen=True, slots=True)
class FunctionReport:
    """What happened to one function declaration."""

    name: str
    action: str


@dataclass(frozen=True, slots=True)
class RewriteResult:
    """Outcome of rewriting one file.

    Attributes
    ----------
    source : bytes
        Rewritten file contents.
    changed : bool
        Whether ``source`` differs from the input.
    functions : tuple[FunctionReport, ...]
        Per-function outcome, in source order.
    imports_added : tuple[str, ...]
        Import paths added to the file.
    """

    source: bytes
    changed: bool
    functions: tuple[FunctionReport, ...] = ()
    imports_added: tuple[str, ...] = ()

    @property
    def instrumented(self) -> list[str]:
        """Names of the instrumented functions."""
        return [report.name for report in self.functions if report.action == INSTRUMENTED]


@dataclass(slots=True)
class _FileState:
    """State of the file being rewritten; discarded after each file."""

    source: bytes
    imports: ImportTable = field(default_factory=ImportTable)
    blocks: list[ImportBlock] = field(default_factory=list)
    package_clause: Node | None = None
    missing_imports: list[str] = field(default_factory=list)
    edits: list[SourceEdit] = field(default_factory=list)


class FileRewriter:
    """Rewrites Go source files according to their directives.

    Parameters
    ----------
    config : GeneratorConfig
        Process-wide configuration.
    links : PrometheusLinks | None, optional
        Link generator for the documentation regions. Defaults to one
        pointing at ``config.prometheus_url``.
    """

    def __init__(self, config: GeneratorConfig, links: PrometheusLinks | None = None) -> None:
        self.config = config
        self.links = links or PrometheusLinks(base_url=config.prometheus_url)

    def rewrite_file(self) -> RewriteResult:
        """Rewrite ``config.file_path`` in place.

        The file is only written when its contents change, through a
        temporary file in the same directory that keeps the permission bits
        of the original.

        Raises
        ------
        SourceIOError
            If the file cannot be read or replaced.
        GeneratorError
            Any rewrite error, with the file path added to its context.
        """
        path = self.config.file_path
        log_context = with_fields(logger, operation="rewrite_file", file=str(path))
        with log_context as log, observe_rewrite():
            try:
                data = path.read_bytes()
                mode = stat.S_IMODE(path.stat().st_mode)
            except OSError as exc:
                message = f"cannot read {path}: {exc.strerror or exc}"
                raise SourceIOError(message, cause=exc, context={"file": str(path)}) from exc
            try:
                result = self.rewrite_source(data)
            except GeneratorError as exc:
                exc.with_context(file=str(path))
                raise
            if result.changed:
                _atomic_write(path, result.source, mode)
            log.info(
                "Rewrote %s: %d function(s) instrumented",
                path,
                len(result.instrumented),
                extra={"changed": result.changed},
            )
            return result

    def rewrite_source(self, data: bytes) -> RewriteResult:
        """Rewrite Go source bytes.

        Parameters
        ----------
        data : bytes
            UTF-8 Go source.

        Returns
        -------
        RewriteResult
            The rewritten source and per-function outcomes.

        Raises
        ------
        ParseError
            If the source does not parse.
        DirectiveError, ConfigError, DocumentationRegionError, SignatureError, ReturnValueError
            If an annotated function cannot be rewritten.
        """
        tree = parse_source(data)
        state = _FileState(source=data)
        reports: list[FunctionReport] = []
        for node in tree.root_node.named_children:
            if node.type == "package_clause":
                state.package_clause = node
            elif node.type == "import_declaration":
                state.blocks.append(read_import_block(node, data, state.imports))
            elif node.type in FUNCTION_NODE_TYPES:
                reports.append(self._rewrite_function(node, state))

        if state.missing_imports:
            if state.package_clause is None:
                message = "source file has no package clause"
                raise ParseError(message)
            state.edits.extend(
                import_edits(state.blocks, state.package_clause, data, state.missing_imports)
            )
        source = apply_edits(data, state.edits)
        for report in reports:
            FUNCTIONS_TOTAL.labels(action=report.action).inc()
        return RewriteResult(
            source=source,
            changed=source != data,
            functions=tuple(reports),
            imports_added=tuple(sorted(set(state.missing_imports))),
        )

    def _rewrite_function(self, node: Node, state: _FileState) -> FunctionReport:
        name_node = node.child_by_field_name("name")
        name = node_text(name_node, state.source) if name_node is not None else "<anonymous>"
        with with_fields(logger, operation="rewrite_function", function=name) as log:
            try:
                action = self._rewrite_declaration(node, name, state, log)
            except GeneratorError as exc:
                exc.with_context(function=name)
                raise
        return FunctionReport(name=name, action=action)

    def _rewrite_declaration(
        self, node: Node, name: str, state: _FileState, log: LoggerAdapter
    ) -> str:
        source = state.source
        comment_nodes = attached_comments(node)
        comments = [node_text(comment, source) for comment in comment_nodes]
        cleaned = strip_documentation(comments, self.links.anchors)
        body = node.child_by_field_name("body")

        directive = None if self.config.remove_everything else find_directive(cleaned)
        if directive is None and self.config.instrument_everything and body is not None:
            directive = Directive(index=len(cleaned), verb="inst", arguments="")

        if directive is None:
            edits: list[SourceEdit] = []
            if body is not None:
                cleanup = rewrite_body(body, source, indent="", statements=None)
                if cleanup is not None:
                    edits.append(cleanup)
            if cleaned != comments:
                edits.append(_comment_edit(node, comment_nodes, cleaned, source))
            state.edits.extend(edits)
            return CLEANED if edits else UNCHANGED

        try:
            if body is None:
                message = f"cannot instrument {name}: the function has no body"
                raise DirectiveError(message)
            config = parse_directive(directive.arguments)
            validate(
                config,
                buckets=self.config.latency_buckets,
                allow_custom_latencies=self.config.allow_custom_latencies,
            )

            library_alias = self._import_alias(
                state, self.config.library_path, DEFAULT_LIBRARY_ALIAS
            )
            lib = call_prefix(library_alias)
            argument = analyze_parameters(
                node.child_by_field_name("parameters"), source, state.imports, lib
            )
            error_pointer = error_return_pointer(node.child_by_field_name("result"), source)
        except GeneratorError as exc:
            exc.with_context(directive=directive.arguments or directive.verb)
            raise

        time_prefix = "time."
        if config.latency_target_ns is not None:
            time_prefix = call_prefix(self._import_alias(state, TIME_PACKAGE, TIME_PACKAGE))
        statements = [
            *prologue_statement(lib, argument, config, time_prefix=time_prefix),
            exit_statement(lib, argument, error_pointer),
        ]
        body_edit = rewrite_body(
            body, source, indent=indentation(source, node) + "\t", statements=statements
        )
        if body_edit is not None:
            state.edits.append(body_edit)

        if not (self.config.disable_doc_generation or config.no_doc):
            block = self.links.documentation_block(name, config)
            cleaned = insert_documentation(cleaned, directive.index, block)
        if cleaned != comments:
            state.edits.append(_comment_edit(node, comment_nodes, cleaned, source))
        log.debug(
            "Instrumented %s",
            name,
            extra={"context_shape": argument.shape.value, "error_pointer": error_pointer},
        )
        return INSTRUMENTED

    def _import_alias(self, state: _FileState, path: str, alias: str) -> str:
        """Alias of ``path``, scheduling its import under ``alias`` if missing."""
        existing = state.imports.alias_for(path)
        if existing is not None:
            return existing
        clash = state.imports.resolve(alias)
        if clash is not None:
            logger.warning(
                "Importing %s as %r shadows the import of %s",
                path,
                alias,
                clash,
                extra={"operation": "inject_import"},
            )
        state.imports.add(path, alias)
        state.missing_imports.append(path)
        return alias


def _comment_edit(
    declaration: Node, comment_nodes: list[Node], lines: list[str], source: bytes
) -> SourceEdit:
    """Edit replacing the comments attached to ``declaration`` with ``lines``."""
    if not comment_nodes:
        prefix = indentation(source, declaration)
        text = "".join(f"{line}\n{prefix}" for line in lines)
        return SourceEdit(declaration.start_byte, declaration.start_byte, text)
    first, last = comment_nodes[0], comment_nodes[-1]
    if not lines:
        # Drop the emptied lines entirely, up to the declaration itself.
        return SourceEdit(line_start(source, first.start_byte), declaration.start_byte, "")
    prefix = indentation(source, first)
    return SourceEdit(first.start_byte, last.end_byte, f"\n{prefix}".join(lines))


def _atomic_write(target: Path, content: bytes, mode: int) -> None:
    """Replace ``target`` with ``content``, keeping its permission bits."""
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=target.parent,
            prefix=f".{target.name}.",
            delete=False,
        ) as tmp_file:
            temp_path = Path(tmp_file.name)
            tmp_file.write(content)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        temp_path.chmod(mode)
        temp_path.replace(target)
    except OSError as exc:
        message = f"cannot write {target}: {exc.strerror or exc}"
        raise SourceIOError(message, cause=exc, context={"file": str(target)}) from exc
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()


def rewrite_source(data: bytes, config: GeneratorConfig) -> RewriteResult:
    """Rewrite Go source bytes with a default :class:`FileRewriter`."""
    return FileRewriter(config).rewrite_source(data)


def rewrite_file(config: GeneratorConfig) -> RewriteResult:
    """Rewrite ``config.file_path`` in place with a default :class:`FileRewriter`."""
    return FileRewriter(config).rewrite_file()
