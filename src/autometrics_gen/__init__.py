"""Source generator instrumenting Go functions with Autometrics.

``go generate`` runs the generator on one file at a time; every function
whose doc comment carries an ``//autometrics:inst`` directive gets a
prologue building an instrumentation context, a deferred call recording
its metrics, and a documentation region linking to Prometheus queries.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from autometrics_gen.rewriter import FileRewriter, RewriteResult, rewrite_file, rewrite_source
from autometrics_gen.settings import Backend, GeneratorConfig

__all__ = [
    "Backend",
    "FileRewriter",
    "GeneratorConfig",
    "RewriteResult",
    "__version__",
    "rewrite_file",
    "rewrite_source",
]


def _resolve_version() -> str:
    try:
        return pkg_version("autometrics-gen")
    except PackageNotFoundError:  # pragma: no cover - source checkout without install
        return "0.0.0"


__version__ = _resolve_version()
