"""Prometheus metrics describing generator runs.

The collectors live in a private registry so that importing the package in
a process that already exposes metrics does not collide with its names. The
CLI dumps the registry in the text exposition format when ``--metrics-file``
is given, which suits the node exporter textfile collector on build hosts.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Final

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

__all__ = [
    "FILES_TOTAL",
    "FUNCTIONS_TOTAL",
    "REGISTRY",
    "REWRITE_DURATION_SECONDS",
    "observe_rewrite",
    "write_metrics",
]

REGISTRY: Final[CollectorRegistry] = CollectorRegistry(auto_describe=True)

FILES_TOTAL: Final[Counter] = Counter(
    "autometrics_gen_files_total",
    "Source files processed by the generator",
    labelnames=["status"],
    registry=REGISTRY,
)
FUNCTIONS_TOTAL: Final[Counter] = Counter(
    "autometrics_gen_functions_total",
    "Function declarations visited, by outcome",
    labelnames=["action"],
    registry=REGISTRY,
)
REWRITE_DURATION_SECONDS: Final[Histogram] = Histogram(
    "autometrics_gen_rewrite_duration_seconds",
    "Time spent rewriting one source file",
    registry=REGISTRY,
)


@contextmanager
def observe_rewrite() -> Iterator[None]:
    """Time a file rewrite and count it as ``ok`` or by error code."""
    start = time.monotonic()
    status = "ok"
    try:
        yield
    except Exception as exc:
        status = str(getattr(exc, "code", "error"))
        raise
    finally:
        REWRITE_DURATION_SECONDS.observe(time.monotonic() - start)
        FILES_TOTAL.labels(status=status).inc()


def write_metrics(path: Path) -> None:
    """Write the generator registry to ``path`` in text exposition format."""
    write_to_textfile(str(path), REGISTRY)
