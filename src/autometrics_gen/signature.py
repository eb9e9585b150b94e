"""Context-argument detection and error-return analysis.

The analyzer looks at a function's parameters, in order, for a value that
carries a request context the instrumentation can reuse: a standard
``context.Context``, an ``*http.Request``, or the context type of one of the
supported web frameworks. Detection is purely name based: the parameter type
is resolved through the file's import table and compared with the known
``(package path, type name)`` pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from autometrics_gen.errors import ReturnValueError, SignatureError
from autometrics_gen.gosyntax import node_text
from autometrics_gen.logging import get_logger

if TYPE_CHECKING:
    from tree_sitter import Node

    from autometrics_gen.imports import ImportTable

__all__ = [
    "KNOWN_CONTEXTS",
    "NIL",
    "ContextArgument",
    "ContextShape",
    "analyze_parameters",
    "classify_type",
    "describe_argument",
    "error_return_pointer",
]

logger = get_logger(__name__)

NIL: Final[str] = "nil"
BLANK_NAME: Final[str] = "_"
TRACE_ID_KEY: Final[str] = "autometricsTraceID"
SPAN_ID_KEY: Final[str] = "autometricsSpanID"


class ContextShape(StrEnum):
    """Kinds of context argument a function can receive."""

    NONE = "none"
    PLAIN = "plain"
    REQUEST = "request"
    GIN = "gin"
    ECHO = "echo"
    EMBEDDED = "embedded"


KNOWN_CONTEXTS: Final[dict[tuple[str, str], ContextShape]] = {
    ("context", "Context"): ContextShape.PLAIN,
    ("net/http", "Request"): ContextShape.REQUEST,
    ("github.com/gin-gonic/gin", "Context"): ContextShape.GIN,
    ("github.com/labstack/echo/v4", "Context"): ContextShape.ECHO,
    ("github.com/gobuffalo/buffalo", "Context"): ContextShape.EMBEDDED,
}

# Accessor reading a string from the framework's per-request value store.
_VALUE_GETTERS: Final[dict[ContextShape, str]] = {
    ContextShape.GIN: "GetString",
    ContextShape.ECHO: "Get",
}

_NOT_A_CONTEXT: Final[frozenset[str]] = frozenset(
    {
        "array_type",
        "channel_type",
        "function_type",
        "generic_type",
        "implicit_length_array_type",
        "interface_type",
        "map_type",
        "slice_type",
        "struct_type",
        "negated_type",
    }
)


@dataclass(frozen=True, slots=True)
class ContextArgument:
    """Description of the detected context argument.

    Attributes
    ----------
    shape : ContextShape
        Which kind of argument was found.
    name : str | None
        Parameter name.
    parent : str
        Go expression for the parent context handed to ``NewContext``.
    trace_id : str | None
        Go expression reading the propagated trace id, if any.
    span_id : str | None
        Go expression reading the propagated span id, if any.
    """

    shape: ContextShape = ContextShape.NONE
    name: str | None = None
    parent: str = NIL
    trace_id: str | None = None
    span_id: str | None = None

    @property
    def shadows_argument(self) -> bool:
        """Whether the prologue reassigns the argument itself."""
        return self.shape in {ContextShape.PLAIN, ContextShape.EMBEDDED}


NO_CONTEXT: Final[ContextArgument] = ContextArgument()


def describe_argument(shape: ContextShape, name: str, lib_prefix: str) -> ContextArgument:
    """Build the descriptor for a parameter ``name`` of the given shape."""
    if shape is ContextShape.NONE:
        return NO_CONTEXT
    if name == BLANK_NAME:
        logger.warning(
            "An unnamed %s argument has been detected; name it and run go generate "
            "again to reuse its context for tracing",
            shape.value,
            extra={"operation": "analyze_signature"},
        )
        return NO_CONTEXT
    if shape is ContextShape.REQUEST:
        return ContextArgument(shape=shape, name=name, parent=f"{name}.Context()")
    getter = _VALUE_GETTERS.get(shape)
    if getter is not None:
        return ContextArgument(
            shape=shape,
            name=name,
            trace_id=f'{lib_prefix}DecodeString({name}.{getter}("{TRACE_ID_KEY}"))',
            span_id=f'{lib_prefix}DecodeString({name}.{getter}("{SPAN_ID_KEY}"))',
        )
    return ContextArgument(shape=shape, name=name, parent=name)


def classify_type(node: Node, source: bytes, imports: ImportTable) -> ContextShape:
    """Classify a parameter type node.

    Raises
    ------
    SignatureError
        If a pointer points to another pointer or a parenthesised type, which
        cannot be reduced to a type name.
    """
    if node.type == "type_identifier":
        type_name = node_text(node, source)
        for path in imports.dot_imports():
            shape = KNOWN_CONTEXTS.get((path, type_name))
            if shape is not None:
                return shape
        return ContextShape.NONE
    if node.type == "qualified_type":
        package = node.child_by_field_name("package")
        name = node.child_by_field_name("name")
        if package is None or name is None:
            message = f"cannot classify parameter type {node_text(node, source)!r}"
            raise SignatureError(message)
        path = imports.resolve(node_text(package, source))
        if path is None:
            return ContextShape.NONE
        return KNOWN_CONTEXTS.get((path, node_text(name, source)), ContextShape.NONE)
    if node.type == "pointer_type":
        element = node.named_children[0] if node.named_children else None
        if element is not None and element.type in _NOT_A_CONTEXT:
            return ContextShape.NONE
        if element is None or element.type not in {"type_identifier", "qualified_type"}:
            message = f"expecting a pointer to a type name, got {node_text(node, source)!r}"
            raise SignatureError(message)
        return classify_type(element, source, imports)
    return ContextShape.NONE


def analyze_parameters(
    parameters: Node | None,
    source: bytes,
    imports: ImportTable,
    lib_prefix: str,
) -> ContextArgument:
    """Find the context argument of a function.

    Only parameter groups declaring exactly one name are examined, and the
    first matching parameter wins.

    Parameters
    ----------
    parameters : Node | None
        The function's ``parameter_list`` node.
    source : bytes
        File contents.
    imports : ImportTable
        Imports of the file.
    lib_prefix : str
        Call qualifier of the instrumentation library (``"prom."``).

    Returns
    -------
    ContextArgument
        Descriptor of the argument, ``shape`` NONE when nothing matched.
    """
    if parameters is None:
        return NO_CONTEXT
    for declaration in parameters.named_children:
        if declaration.type != "parameter_declaration":
            continue
        names = declaration.children_by_field_name("name")
        type_node = declaration.child_by_field_name("type")
        if len(names) != 1 or type_node is None:
            continue
        shape = classify_type(type_node, source, imports)
        if shape is not ContextShape.NONE:
            return describe_argument(shape, node_text(names[0], source), lib_prefix)
    return NO_CONTEXT


def error_return_pointer(result: Node | None, source: bytes) -> str:
    """Go expression for the address of the named ``error`` result.

    Returns ``nil`` when the function has no named ``error`` result.

    Raises
    ------
    ReturnValueError
        If more than one named result has type ``error``.
    """
    if result is None or result.type != "parameter_list":
        return NIL
    names: list[str] = []
    for declaration in result.named_children:
        if declaration.type != "parameter_declaration":
            continue
        type_node = declaration.child_by_field_name("type")
        if type_node is None or node_text(type_node, source) != "error":
            continue
        names.extend(
            node_text(name, source)
            for name in declaration.children_by_field_name("name")
            if node_text(name, source) != BLANK_NAME
        )
    if len(names) > 1:
        message = f"expecting at most one named error return value, got {len(names)}: {names}"
        raise ReturnValueError(message)
    return f"&{names[0]}" if names else NIL
