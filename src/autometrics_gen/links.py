"""Prometheus query links and the generated documentation block.

Every instrumented function gets a documentation region listing links to
the Prometheus expression browser, pre-filled with the queries that chart
its request rate, error ratio, latency percentiles and concurrent calls, and
the same for the functions it calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final
from urllib.parse import parse_qsl, quote_plus, urlencode, urlsplit, urlunsplit

from autometrics_gen.settings import DEFAULT_PROMETHEUS_URL

if TYPE_CHECKING:
    from autometrics_gen.directive import InstrumentationConfig

__all__ = [
    "DOC_END",
    "DOC_END_COOKIE",
    "DOC_START",
    "DOC_START_COOKIE",
    "Link",
    "MetricNames",
    "PrometheusLinks",
]

DOC_START_COOKIE: Final[str] = "autometrics:doc-start"
DOC_END_COOKIE: Final[str] = "autometrics:doc-end"
DOC_START: Final[str] = f"//\t{DOC_START_COOKIE} Generated documentation by Autometrics."
DOC_END: Final[str] = f"//\t{DOC_END_COOKIE} Generated documentation by Autometrics."

REQUEST_RATE: Final[str] = "Request Rate"
ERROR_RATIO: Final[str] = "Error Ratio"
LATENCY: Final[str] = "Latency (95th and 99th percentiles)"
CONCURRENT_CALLS: Final[str] = "Concurrent Calls"
REQUEST_RATE_CALLEE: Final[str] = "Request Rate Callee"
ERROR_RATIO_CALLEE: Final[str] = "Error Ratio Callee"

SUM_BY: Final[str] = "function, module, service_name, version, commit"
RATE_WINDOW: Final[str] = "5m"


@dataclass(frozen=True, slots=True)
class MetricNames:
    """Metric names exported by the runtime library."""

    calls: str = "function_calls_total"
    duration: str = "function_calls_duration_seconds"
    concurrent: str = "function_calls_concurrent"
    build_info: str = "build_info"


@dataclass(frozen=True, slots=True)
class Link:
    """A documentation link.

    Attributes
    ----------
    anchor : str
        Link text, used as ``[anchor]`` in the comment.
    description : str
        Human readable description, prepended to the query as a comment.
    query : str
        PromQL expression.
    url : str
        Expression browser URL showing the query.
    """

    anchor: str
    description: str
    query: str
    url: str


@dataclass(frozen=True, slots=True)
class PrometheusLinks:
    """Generator of Prometheus expression browser links.

    Parameters
    ----------
    base_url : str, optional
        Root URL of the Prometheus UI. Defaults to ``http://localhost:9090/``.
    metrics : MetricNames, optional
        Names of the runtime metrics.
    """

    base_url: str = DEFAULT_PROMETHEUS_URL
    metrics: MetricNames = field(default_factory=MetricNames)

    @property
    def anchors(self) -> tuple[str, ...]:
        """Every anchor this generator can emit."""
        return (
            REQUEST_RATE,
            ERROR_RATIO,
            LATENCY,
            CONCURRENT_CALLS,
            REQUEST_RATE_CALLEE,
            ERROR_RATIO_CALLEE,
        )

    @property
    def _build_join(self) -> str:
        return (
            "* on (instance, job) group_left(version, commit) "
            f"last_over_time({self.metrics.build_info}[1s])"
        )

    def request_rate_query(self, label: str, function: str) -> str:
        """Calls per second of the functions matching ``label="function"``."""
        return (
            f"sum by ({SUM_BY}) "
            f'(rate({self.metrics.calls}{{{label}="{function}"}}[{RATE_WINDOW}]) '
            f"{self._build_join})"
        )

    def error_ratio_query(self, label: str, function: str) -> str:
        """Share of calls ending in an error."""
        errors = (
            f"sum by ({SUM_BY}) "
            f'(rate({self.metrics.calls}{{{label}="{function}",result="error"}}[{RATE_WINDOW}]) '
            f"{self._build_join})"
        )
        return f"({errors}) / ({self.request_rate_query(label, function)})"

    def latency_query(self, label: str, function: str) -> str:
        """95th and 99th latency percentiles, labelled ``percentile_latency``."""
        buckets = (
            f"sum by (le, {SUM_BY}) "
            f'(rate({self.metrics.duration}_bucket{{{label}="{function}"}}[{RATE_WINDOW}]) '
            f"{self._build_join})"
        )
        return " or ".join(
            f"label_replace(histogram_quantile({quantile}, {buckets}), "
            f'"percentile_latency", "{percentile}", "", "")'
            for quantile, percentile in (("0.99", "99"), ("0.95", "95"))
        )

    def concurrent_calls_query(self, label: str, function: str) -> str:
        """In-flight calls of the function."""
        return (
            f"sum by ({SUM_BY}) "
            f'({self.metrics.concurrent}{{{label}="{function}"}} {self._build_join})'
        )

    def graph_url(self, query: str, description: str) -> str:
        """Expression browser URL for ``query``.

        Existing query parameters of the base URL are kept; parameters are
        sorted by key and form encoded.
        """
        parts = urlsplit(self.base_url)
        params = [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in {"g0.expr", "g0.tab"}
        ]
        params.append(("g0.expr", f"# {description}\n\n{query}"))
        params.append(("g0.tab", "0"))
        params.sort(key=lambda item: item[0])
        path = parts.path.rstrip("/") + "/graph"
        query = urlencode(params, quote_via=quote_plus)
        return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))

    def _link(self, anchor: str, description: str, query: str) -> Link:
        return Link(anchor, description, query, self.graph_url(query, description))

    def links(self, function: str, config: InstrumentationConfig) -> list[Link]:
        """Links for ``function`` in document order.

        The concurrent calls link is left out when the gauge is disabled.
        """
        result = [
            self._link(
                REQUEST_RATE,
                f"Rate of calls to the `{function}` function per second, "
                "averaged over 5 minute windows",
                self.request_rate_query("function", function),
            ),
            self._link(
                ERROR_RATIO,
                f"Percentage of calls to the `{function}` function that return errors, "
                "averaged over 5 minute windows",
                self.error_ratio_query("function", function),
            ),
            self._link(
                LATENCY,
                f"95th and 99th percentile latencies (in seconds) for the `{function}` function",
                self.latency_query("function", function),
            ),
        ]
        if config.track_concurrent_calls:
            result.append(
                self._link(
                    CONCURRENT_CALLS,
                    f"Concurrent calls to the `{function}` function",
                    self.concurrent_calls_query("function", function),
                )
            )
        result.append(
            self._link(
                REQUEST_RATE_CALLEE,
                f"Rate of function calls emanating from `{function}` function per second, "
                "averaged over 5 minute windows",
                self.request_rate_query("caller_function", function),
            )
        )
        result.append(
            self._link(
                ERROR_RATIO_CALLEE,
                f"Percentage of function emanating from `{function}` function that return "
                "errors, averaged over 5 minute windows",
                self.error_ratio_query("caller_function", function),
            )
        )
        return result

    def documentation_block(self, function: str, config: InstrumentationConfig) -> list[str]:
        """Comment lines of the documentation region for ``function``."""
        links = self.links(function, config)
        callee = {REQUEST_RATE_CALLEE, ERROR_RATIO_CALLEE}
        lines = [
            "//",
            DOC_START,
            "//",
            "// # Autometrics",
            "//",
            "// # Prometheus",
            "//",
            f"// View the live metrics for the `{function}` function:",
        ]
        lines.extend(f"//   - [{link.anchor}]" for link in links if link.anchor not in callee)
        lines.append("//")
        lines.append(f"// Or, dig into the metrics of *functions called by* `{function}`")
        lines.extend(f"//   - [{link.anchor}]" for link in links if link.anchor in callee)
        lines.extend(["//", DOC_END, "//"])
        lines.extend(f"// [{link.anchor}]: {link.url}" for link in links)
        return lines
