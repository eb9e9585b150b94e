from __future__ import annotations

import pytest

from autometrics_gen.directive import InstrumentationConfig
from autometrics_gen.gosyntax import apply_edits, parse_source
from autometrics_gen.signature import ContextArgument, ContextShape
from autometrics_gen.statements import (
    exit_statement,
    go_float,
    go_quote,
    marked_statements,
    prologue_statement,
    rewrite_body,
)
from tests.autometrics_gen.helpers import go

PLAIN = ContextArgument(shape=ContextShape.PLAIN, name="ctx", parent="ctx")
REQUEST = ContextArgument(shape=ContextShape.REQUEST, name="r", parent="r.Context()")
STATEMENTS = [
    "amCtx := prom.PreInstrument(prom.NewContext(",
    "\tnil,",
    ")) //autometrics:shadow-ctx",
    "defer prom.Instrument(amCtx, nil) //autometrics:defer",
]


def _rewrite(source: bytes, statements: list[str] | None = STATEMENTS) -> str:
    tree = parse_source(source)
    function = next(
        node for node in tree.root_node.named_children if node.type == "function_declaration"
    )
    body = function.child_by_field_name("body")
    edit = rewrite_body(body, source, indent="\t", statements=statements)
    return apply_edits(source, [edit] if edit else []).decode("utf-8")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(99.0, "99"), (99.9, "99.9"), (0.5, "0.5"), (95.25, "95.25")],
)
def test_go_float(value: float, expected: str) -> None:
    assert go_float(value) == expected


def test_go_quote() -> None:
    assert go_quote("Service Test") == '"Service Test"'
    assert go_quote('say "hi"\n') == '"say \\"hi\\"\\n"'


class TestSynthesis:
    """Generated statements."""

    def test_prologue_with_objectives(self) -> None:
        config = InstrumentationConfig(
            service_name="Service Test",
            success_objective=99.0,
            latency_ms=250.0,
            latency_objective=95.0,
        )

        lines = prologue_statement("prom.", ContextArgument(), config)

        assert lines == [
            "amCtx := prom.PreInstrument(prom.NewContext(",
            "\tnil,",
            "\tprom.WithConcurrentCalls(true),",
            "\tprom.WithCallerName(true),",
            '\tprom.WithSloName("Service Test"),',
            "\tprom.WithAlertLatency(250000000 * time.Nanosecond, 95),",
            "\tprom.WithAlertSuccess(99),",
            ")) //autometrics:shadow-ctx",
        ]

    def test_plain_context_is_reassigned(self) -> None:
        lines = prologue_statement("", PLAIN, InstrumentationConfig())

        assert lines[0] == "ctx = PreInstrument(NewContext("
        assert lines[1] == "\tctx,"
        exit_line = exit_statement("", PLAIN, "&err")
        assert exit_line == "defer Instrument(ctx, &err) //autometrics:defer"

    def test_request_context(self) -> None:
        lines = prologue_statement("am.", REQUEST, InstrumentationConfig())

        assert lines[0] == "amCtx := am.PreInstrument(am.NewContext("
        assert lines[1] == "\tr.Context(),"
        assert exit_statement("am.", REQUEST, "nil") == (
            "defer am.Instrument(amCtx, nil) //autometrics:defer"
        )

    def test_trace_options_follow_caller_name(self) -> None:
        argument = ContextArgument(
            shape=ContextShape.GIN, name="c", trace_id="T", span_id="S"
        )

        lines = prologue_statement("prom.", argument, InstrumentationConfig())

        assert lines[2:6] == [
            "\tprom.WithConcurrentCalls(true),",
            "\tprom.WithCallerName(true),",
            "\tprom.WithTraceID(T),",
            "\tprom.WithSpanID(S),",
        ]

    def test_renamed_time_package(self) -> None:
        config = InstrumentationConfig(service_name="a", latency_ms=100.0, latency_objective=99.0)

        lines = prologue_statement("prom.", ContextArgument(), config, time_prefix="stdtime.")

        assert "\tprom.WithAlertLatency(100000000 * stdtime.Nanosecond, 99)," in lines


class TestRewriteBody:
    """Insertion and removal of the generated statements."""

    def test_insert_before_existing_statements(self) -> None:
        result = _rewrite(
            go(
                """
                package main

                func main() {
                \tfmt.Println("hello")
                }
                """
            )
        )

        assert result == go(
            """
            package main

            func main() {
            \tamCtx := prom.PreInstrument(prom.NewContext(
            \t\tnil,
            \t)) //autometrics:shadow-ctx
            \tdefer prom.Instrument(amCtx, nil) //autometrics:defer

            \tfmt.Println("hello")
            }
            """
        ).decode("utf-8")

    def test_empty_body(self) -> None:
        result = _rewrite(go("package main\n\nfunc main() {}\n"))

        assert result.endswith(
            "func main() {\n"
            "\tamCtx := prom.PreInstrument(prom.NewContext(\n"
            "\t\tnil,\n"
            "\t)) //autometrics:shadow-ctx\n"
            "\tdefer prom.Instrument(amCtx, nil) //autometrics:defer\n"
            "}\n"
        )

    def test_single_line_body_is_expanded(self) -> None:
        result = _rewrite(go("package main\n\nfunc main() { run() }\n"))

        assert result.endswith("//autometrics:defer\n\n\trun()\n}\n")

    def test_rewriting_twice_is_stable(self) -> None:
        once = _rewrite(go("package main\n\nfunc main() {\n\trun()\n}\n"))

        assert _rewrite(once.encode("utf-8")) == once

    def test_removal_restores_the_body(self) -> None:
        original = go("package main\n\nfunc main() {\n\trun()\n}\n")
        instrumented = _rewrite(original).encode("utf-8")

        assert _rewrite(instrumented, statements=None) == original.decode("utf-8")

    def test_marked_statements(self) -> None:
        source = _rewrite(go("package main\n\nfunc main() {\n\trun()\n}\n")).encode("utf-8")
        tree = parse_source(source)
        function = tree.root_node.named_children[-1]

        body = function.child_by_field_name("body")

        markers = [marker for _, marker in marked_statements(body, source)]

        assert markers == [b"autometrics:shadow-ctx", b"autometrics:defer"]

    def test_untouched_body_without_markers(self) -> None:
        source = go("package main\n\nfunc main() {\n\trun() // regular comment\n}\n")
        tree = parse_source(source)
        body = tree.root_node.named_children[-1].child_by_field_name("body")

        assert rewrite_body(body, source, indent="\t", statements=None) is None
