"""Synthesis and removal of the instrumentation statements.

Each instrumented function body starts with two generated statements, both
tagged with an end-of-line marker so that later runs can find and replace
them::

    amCtx := prom.PreInstrument(prom.NewContext(
        nil,
        prom.WithConcurrentCalls(true),
        prom.WithCallerName(true),
    )) //autometrics:shadow-ctx
    defer prom.Instrument(amCtx, nil) //autometrics:defer

Statements are rendered the way gofmt prints them, one option per line.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from autometrics_gen.gosyntax import SourceEdit, body_statements, line_end, line_start

if TYPE_CHECKING:
    from tree_sitter import Node

    from autometrics_gen.directive import InstrumentationConfig
    from autometrics_gen.signature import ContextArgument

__all__ = [
    "CONTEXT_VARIABLE",
    "DEFER_MARKER",
    "SHADOW_CTX_MARKER",
    "context_variable",
    "exit_statement",
    "go_float",
    "go_quote",
    "marked_statements",
    "prologue_statement",
    "rewrite_body",
]

SHADOW_CTX_MARKER: Final[str] = "//autometrics:shadow-ctx"
DEFER_MARKER: Final[str] = "//autometrics:defer"
CONTEXT_VARIABLE: Final[str] = "amCtx"

_MARKERS: Final[tuple[bytes, ...]] = (
    SHADOW_CTX_MARKER.removeprefix("//").encode(),
    DEFER_MARKER.removeprefix("//").encode(),
)

_GO_ESCAPES: Final[dict[str, str]] = {
    '"': '\\"',
    "\\": "\\\\",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def go_float(value: float) -> str:
    """Render a float literal the way Go's ``%#v`` does for these values.

    >>> go_float(99.0), go_float(99.9)
    ('99', '99.9')
    """
    text = repr(float(value))
    return text.removesuffix(".0")


def go_quote(text: str) -> str:
    """Render ``text`` as an interpreted Go string literal."""
    escaped = []
    for char in text:
        if char in _GO_ESCAPES:
            escaped.append(_GO_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\x{ord(char):02x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def _go_bool(value: bool) -> str:
    return "true" if value else "false"


def context_variable(argument: ContextArgument) -> str:
    """Identifier holding the instrumentation context."""
    if argument.shadows_argument and argument.name:
        return argument.name
    return CONTEXT_VARIABLE


def prologue_statement(
    lib: str,
    argument: ContextArgument,
    config: InstrumentationConfig,
    *,
    time_prefix: str = "time.",
) -> list[str]:
    """Lines of the statement building the instrumentation context.

    Parameters
    ----------
    lib : str
        Call qualifier of the instrumentation library (``"prom."`` or ``""``).
    argument : ContextArgument
        Detected context argument.
    config : InstrumentationConfig
        Validated configuration of the function.
    time_prefix : str, optional
        Qualifier of the ``time`` package. Defaults to ``"time."``.

    Returns
    -------
    list[str]
        Statement lines, relative to the body indentation.
    """
    variable = context_variable(argument)
    operator = "=" if argument.shadows_argument else ":="
    options = [
        f"{lib}WithConcurrentCalls({_go_bool(config.track_concurrent_calls)})",
        f"{lib}WithCallerName({_go_bool(config.track_caller_name)})",
    ]
    if argument.trace_id is not None:
        options.append(f"{lib}WithTraceID({argument.trace_id})")
    if argument.span_id is not None:
        options.append(f"{lib}WithSpanID({argument.span_id})")
    if config.service_name:
        options.append(f"{lib}WithSloName({go_quote(config.service_name)})")
    target_ns = config.latency_target_ns
    if target_ns is not None and config.latency_objective is not None:
        options.append(
            f"{lib}WithAlertLatency({target_ns} * {time_prefix}Nanosecond, "
            f"{go_float(config.latency_objective)})"
        )
    if config.success_objective is not None:
        options.append(f"{lib}WithAlertSuccess({go_float(config.success_objective)})")
    return [
        f"{variable} {operator} {lib}PreInstrument({lib}NewContext(",
        f"\t{argument.parent},",
        *(f"\t{option}," for option in options),
        f")) {SHADOW_CTX_MARKER}",
    ]


def exit_statement(lib: str, argument: ContextArgument, error_pointer: str) -> str:
    """Deferred call recording the metrics when the function returns."""
    return f"defer {lib}Instrument({context_variable(argument)}, {error_pointer}) {DEFER_MARKER}"


def _trailing_marker(source: bytes, statement: Node) -> bytes | None:
    tail = source[statement.end_byte : line_end(source, statement.end_byte)].strip()
    if not tail.startswith(b"//"):
        return None
    for marker in _MARKERS:
        if marker in tail:
            return marker
    return None


def marked_statements(block: Node, source: bytes) -> list[tuple[Node, bytes]]:
    """Body statements carrying a generated-statement marker, with the marker."""
    found = []
    for statement in body_statements(block):
        marker = _trailing_marker(source, statement)
        if marker is not None:
            found.append((statement, marker))
    return found


def _removed_ranges(block: Node, source: bytes) -> list[tuple[int, int]]:
    body_start = block.start_byte + 1
    body_end = block.end_byte - 1
    ranges = []
    for statement, marker in marked_statements(block, source):
        start = max(line_start(source, statement.start_byte), body_start)
        end = min(line_end(source, statement.end_byte) + 1, body_end)
        # The exit statement is followed by a generated blank separator.
        if marker == _MARKERS[1] and end < body_end:
            next_end = line_end(source, end)
            if next_end < body_end and not source[end:next_end].strip():
                end = next_end + 1
        ranges.append((start, end))
    return sorted(ranges)


def rewrite_body(
    block: Node,
    source: bytes,
    *,
    indent: str,
    statements: list[str] | None,
) -> SourceEdit | None:
    """Edit replacing the generated statements of a function body.

    Previously generated statements are removed. When ``statements`` is
    given, they are inserted at the top of the body, followed by a blank
    line if the body has other content. Bodies written on one line
    (``{ return nil }``) are expanded.

    Parameters
    ----------
    block : Node
        The function's ``block`` node.
    source : bytes
        File contents.
    indent : str
        Indentation of the body statements.
    statements : list[str] | None
        Lines to insert, relative to ``indent``; None only removes.

    Returns
    -------
    SourceEdit | None
        Replacement of the text between the braces, None when unchanged.
    """
    body_start = block.start_byte + 1
    body_end = block.end_byte - 1
    removed = _removed_ranges(block, source)
    if statements is None and not removed:
        return None

    pieces: list[bytes] = []
    cursor = body_start
    for start, end in removed:
        pieces.append(source[cursor:start])
        cursor = max(cursor, end)
    pieces.append(source[cursor:body_end])
    rest = b"".join(pieces).decode("utf-8")
    if statements is None:
        return SourceEdit(body_start, body_end, rest)

    if rest.startswith("\n"):
        remaining = rest[1:]
    else:
        first, newline, remainder = rest.partition("\n")
        content = first.strip()
        head = f"{indent}{content}\n" if content else ""
        closing = remainder if newline else indent.removesuffix("\t")
        remaining = head + closing

    generated = "".join(f"{indent}{line}\n" for line in statements)
    if remaining.strip():
        text = f"\n{generated}\n{remaining}"
    else:
        closing_indent = remaining.rpartition("\n")[2]
        text = f"\n{generated}{closing_indent}"
    return SourceEdit(body_start, body_end, text)
