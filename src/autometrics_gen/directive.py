"""Directive comments and per-function instrumentation configuration.

A directive is a comment of the form ``//autometrics:inst [flags...]`` (or
``//autometrics:doc``) in the comments attached to a function. Its
arguments are split with POSIX shell rules, so service names containing
spaces are quoted: ``--slo "Service Test"``.

Examples
--------
>>> config = parse_directive('--slo "Service Test" --success-target 99')
>>> config.service_name, config.success_objective
('Service Test', 99.0)
"""

from __future__ import annotations

import math
import re
import shlex
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from autometrics_gen.errors import ConfigError, DirectiveError
from autometrics_gen.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = [
    "DIRECTIVE_VERBS",
    "Directive",
    "InstrumentationConfig",
    "duration_seconds",
    "find_directive",
    "parse_directive",
    "validate",
]

logger = get_logger(__name__)

DIRECTIVE_VERBS: Final[frozenset[str]] = frozenset({"doc", "inst"})
NANOSECONDS_PER_MILLISECOND: Final[int] = 1_000_000
NANOSECONDS_PER_SECOND: Final[int] = 1_000_000_000

_DIRECTIVE = re.compile(r"//autometrics:(?P<verb>[A-Za-z][\w-]*)(?:\s+(?P<arguments>.*?))?\s*")

_NUMERIC_FLAGS: Final[dict[str, str]] = {
    "--success-target": "success_objective",
    "--latency-ms": "latency_ms",
    "--latency-target": "latency_objective",
}


@dataclass(frozen=True, slots=True)
class Directive:
    """A directive comment found among a function's attached comments.

    Attributes
    ----------
    index : int
        Position of the directive in the attached comment list.
    verb : str
        ``inst`` or ``doc``.
    arguments : str
        Raw argument string following the verb.
    """

    index: int
    verb: str
    arguments: str


@dataclass(frozen=True, slots=True)
class InstrumentationConfig:
    """Instrumentation options for one function.

    Attributes
    ----------
    service_name : str | None
        SLO (service) name; required as soon as an objective is set.
    success_objective : float | None
        Success rate objective, in percent.
    latency_ms : float | None
        Latency threshold in milliseconds.
    latency_objective : float | None
        Percentage of calls that must complete under ``latency_ms``.
    no_doc : bool
        Do not generate documentation for this function.
    track_concurrent_calls : bool
        Emit the concurrent calls gauge (and its documentation link).
    track_caller_name : bool
        Label metrics with the calling function.
    """

    service_name: str | None = None
    success_objective: float | None = None
    latency_ms: float | None = None
    latency_objective: float | None = None
    no_doc: bool = False
    track_concurrent_calls: bool = True
    track_caller_name: bool = True

    @property
    def latency_target_ns(self) -> int | None:
        """Latency threshold in nanoseconds, truncated toward zero."""
        if self.latency_ms is None:
            return None
        return int(self.latency_ms * NANOSECONDS_PER_MILLISECOND)

    @property
    def has_objective(self) -> bool:
        """Whether any alerting objective is requested."""
        return (
            self.success_objective is not None
            or self.latency_ms is not None
            or self.latency_objective is not None
        )


def duration_seconds(nanoseconds: int) -> float:
    """Seconds in a nanosecond duration, split as whole seconds plus remainder."""
    seconds, remainder = divmod(nanoseconds, NANOSECONDS_PER_SECOND)
    return float(seconds) + remainder / 1e9


def find_directive(comments: Sequence[str]) -> Directive | None:
    """Return the first directive among ``comments``.

    Comments using the ``//autometrics:`` prefix with another verb are
    ignored with a warning, as are directives after the first one.
    """
    found: Directive | None = None
    for index, text in enumerate(comments):
        match = _DIRECTIVE.fullmatch(text.rstrip())
        if match is None:
            continue
        verb = match.group("verb")
        if verb not in DIRECTIVE_VERBS:
            logger.warning(
                "Ignoring unknown directive %r",
                text,
                extra={"operation": "find_directive"},
            )
            continue
        if found is not None:
            logger.warning(
                "Ignoring directive %r: only the first directive of a function is used",
                text,
                extra={"operation": "find_directive"},
            )
            continue
        found = Directive(index=index, verb=verb, arguments=match.group("arguments") or "")
    return found


def _flag_value(tokens: Sequence[str], index: int) -> str:
    if index + 1 >= len(tokens):
        message = f"{tokens[index]} expects a value"
        raise DirectiveError(message)
    return tokens[index + 1]


def _number(flag: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        message = f"{flag} expects a number, got {raw!r}"
        raise DirectiveError(message, cause=exc) from exc
    if not math.isfinite(value):
        message = f"{flag} expects a finite number, got {raw!r}"
        raise DirectiveError(message)
    return value


def parse_directive(arguments: str) -> InstrumentationConfig:
    """Parse directive arguments into an :class:`InstrumentationConfig`.

    Unknown tokens are skipped one at a time so that flags understood by
    newer tooling do not break older generators.

    Parameters
    ----------
    arguments : str
        Text following ``//autometrics:inst``.

    Returns
    -------
    InstrumentationConfig
        Parsed (not yet validated) configuration.

    Raises
    ------
    DirectiveError
        On unbalanced quotes, a missing or non-numeric value, an ``--slo``
        value that looks like a flag, or a flag given twice.
    """
    try:
        tokens = shlex.split(arguments, posix=True)
    except ValueError as exc:
        message = f"cannot split directive arguments: {exc}"
        raise DirectiveError(message, cause=exc, context={"directive": arguments}) from exc

    values: dict[str, object] = {}
    seen: set[str] = set()
    index = 0
    try:
        while index < len(tokens):
            token = tokens[index]
            if token in seen:
                message = f"{token} given more than once"
                raise DirectiveError(message)
            if token == "--slo":
                value = _flag_value(tokens, index)
                if value.startswith("--"):
                    message = f"--slo expects a service name, got flag {value!r}"
                    raise DirectiveError(message)
                values["service_name"] = value
                index += 2
            elif token in _NUMERIC_FLAGS:
                values[_NUMERIC_FLAGS[token]] = _number(token, _flag_value(tokens, index))
                index += 2
            elif token == "--no-doc":
                values["no_doc"] = True
                index += 1
            else:
                logger.debug(
                    "Skipping unknown directive token %r",
                    token,
                    extra={"operation": "parse_directive"},
                )
                index += 1
                continue
            seen.add(token)
    except DirectiveError as exc:
        exc.with_context(directive=arguments)
        raise
    return InstrumentationConfig(**values)  # type: ignore[arg-type]


def _check_percentage(flag: str, value: float) -> None:
    if not 0 < value < 100:
        message = f"{flag} must lie in (0, 100), got {value:g}"
        raise ConfigError(message)
    if value <= 1:
        logger.warning(
            "%s is %g%%; objectives are percentages, not ratios",
            flag,
            value,
            extra={"operation": "validate"},
        )


def validate(
    config: InstrumentationConfig,
    *,
    buckets: Sequence[float],
    allow_custom_latencies: bool = False,
) -> None:
    """Check the invariants of an instrumentation configuration.

    Parameters
    ----------
    config : InstrumentationConfig
        Parsed configuration.
    buckets : Sequence[float]
        Latency histogram boundaries in seconds.
    allow_custom_latencies : bool, optional
        Accept latency targets that are not bucket boundaries.

    Raises
    ------
    ConfigError
        If an objective has no service name, a percentage is outside
        (0, 100), the latency flags are not given together, the latency
        target is not positive, or it misses every bucket boundary.
    """
    if config.has_objective and not config.service_name:
        message = "target percentage set without a service name"
        raise ConfigError(message)
    if config.success_objective is not None:
        _check_percentage("--success-target", config.success_objective)
    if (config.latency_ms is None) != (config.latency_objective is None):
        message = "--latency-ms and --latency-target must be set together"
        raise ConfigError(message)
    if config.latency_objective is not None:
        _check_percentage("--latency-target", config.latency_objective)
    target_ns = config.latency_target_ns
    if target_ns is None:
        return
    if target_ns <= 0:
        message = f"--latency-ms must be positive, got {config.latency_ms:g}"
        raise ConfigError(message)
    seconds = duration_seconds(target_ns)
    if not allow_custom_latencies and seconds not in buckets:
        boundaries = ", ".join(f"{bucket:g}" for bucket in buckets)
        message = (
            f"latency target {seconds:g}s is not a histogram bucket boundary "
            f"({boundaries}); use -custom-latency to allow it"
        )
        raise ConfigError(message)
