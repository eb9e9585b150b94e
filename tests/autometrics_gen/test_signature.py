from __future__ import annotations

import logging

import pytest

from autometrics_gen.errors import ReturnValueError, SignatureError
from autometrics_gen.gosyntax import parse_source
from autometrics_gen.imports import ImportTable, read_import_block
from autometrics_gen.signature import (
    ContextArgument,
    ContextShape,
    analyze_parameters,
    error_return_pointer,
)

from tests.autometrics_gen.helpers import go


def _analyze(source: bytes, lib: str = "prom.") -> ContextArgument:
    tree = parse_source(source)
    table = ImportTable()
    function = None
    for node in tree.root_node.named_children:
        if node.type == "import_declaration":
            read_import_block(node, source, table)
        elif node.type == "function_declaration":
            function = node
    assert function is not None
    return analyze_parameters(function.child_by_field_name("parameters"), source, table, lib)


def _error_pointer(source: bytes) -> str:
    tree = parse_source(source)
    function = next(
        node for node in tree.root_node.named_children if node.type == "function_declaration"
    )
    return error_return_pointer(function.child_by_field_name("result"), source)


class TestContextDetection:
    """Classification of the context argument."""

    def test_plain_context(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "context"

                func run(ctx context.Context, n int) {}
                """
            )
        )

        assert argument.shape is ContextShape.PLAIN
        assert argument.name == "ctx"
        assert argument.parent == "ctx"
        assert argument.shadows_argument

    def test_renamed_import(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import stdctx "context"

                func run(c stdctx.Context) {}
                """
            )
        )

        assert argument.shape is ContextShape.PLAIN
        assert argument.name == "c"

    def test_dot_import(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import (
                \t. "context"
                \t. "strings"
                )

                func run(ctx Context) {}
                """
            )
        )

        assert argument.shape is ContextShape.PLAIN

    def test_unimported_context_type_is_ignored(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                func run(ctx Context, other mypkg.Context) {}
                """
            )
        )

        assert argument.shape is ContextShape.NONE
        assert argument.parent == "nil"

    def test_http_request(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "net/http"

                func main(req *http.Request, w http.ResponseWriter) {}
                """
            )
        )

        assert argument.shape is ContextShape.REQUEST
        assert argument.parent == "req.Context()"
        assert not argument.shadows_argument

    def test_unnamed_http_request_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            argument = _analyze(
                go(
                    """
                    package main

                    import "net/http"

                    func main(_ *http.Request) {}
                    """
                )
            )

        assert argument.shape is ContextShape.NONE
        assert argument.parent == "nil"
        assert "unnamed request argument" in caplog.text

    def test_gin_context(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "github.com/gin-gonic/gin"

                func main(c *gin.Context) {}
                """
            )
        )

        assert argument.shape is ContextShape.GIN
        assert argument.parent == "nil"
        assert argument.trace_id == 'prom.DecodeString(c.GetString("autometricsTraceID"))'
        assert argument.span_id == 'prom.DecodeString(c.GetString("autometricsSpanID"))'

    def test_echo_context_with_versioned_path(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "github.com/labstack/echo/v4"

                func handler(c echo.Context) error { return nil }
                """
            ),
            lib="",
        )

        assert argument.shape is ContextShape.ECHO
        assert argument.trace_id == 'DecodeString(c.Get("autometricsTraceID"))'

    def test_buffalo_context_is_embedded(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "github.com/gobuffalo/buffalo"

                func handler(c buffalo.Context) error { return nil }
                """
            )
        )

        assert argument.shape is ContextShape.EMBEDDED
        assert argument.parent == "c"
        assert argument.shadows_argument

    def test_first_match_wins(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import (
                \t"context"
                \t"net/http"
                )

                func main(r *http.Request, ctx context.Context) {}
                """
            )
        )

        assert argument.shape is ContextShape.REQUEST

    def test_grouped_names_are_skipped(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                import "context"

                func main(a, b context.Context, c context.Context) {}
                """
            )
        )

        assert argument.name == "c"

    def test_pointer_to_composite_type_is_not_a_context(self) -> None:
        argument = _analyze(
            go(
                """
                package main

                func main(xs *[]int) {}
                """
            )
        )

        assert argument.shape is ContextShape.NONE

    def test_pointer_to_pointer_is_rejected(self) -> None:
        source = go(
            """
            package main

            import "net/http"

            func main(r **http.Request) {}
            """
        )

        with pytest.raises(SignatureError, match="pointer to a type name"):
            _analyze(source)


class TestErrorReturn:
    """Address of the named error result."""

    def test_named_error(self) -> None:
        source = go(
            """
            package main

            func run() (n int, err error) { return }
            """
        )

        assert _error_pointer(source) == "&err"

    def test_unnamed_results(self) -> None:
        source = go(
            """
            package main

            func run() (int, error) { return 0, nil }
            """
        )

        assert _error_pointer(source) == "nil"

    def test_single_result(self) -> None:
        source = go(
            """
            package main

            func run() error { return nil }
            """
        )

        assert _error_pointer(source) == "nil"

    def test_two_named_errors(self) -> None:
        source = go(
            """
            package main

            func run() (first, second error) { return }
            """
        )

        with pytest.raises(ReturnValueError, match="at most one named error"):
            _error_pointer(source)
