"""Helpers shared by the generator tests."""

from __future__ import annotations

from textwrap import dedent

PROM_PATH = "github.com/autometrics-dev/autometrics-go/prometheus/autometrics"
OTEL_PATH = "github.com/autometrics-dev/autometrics-go/otel/autometrics"


def go(source: str) -> bytes:
    """Dedent an inline Go snippet (written with ``\\t`` escapes) to bytes."""
    return dedent(source).lstrip("\n").encode("utf-8")
