"""Process-wide configuration.

Environment-derived values are read once through :class:`GeneratorSettings`
(pydantic-settings); the CLI then folds its flags in and freezes everything
into a :class:`GeneratorConfig` that is passed explicitly to every component.
Nothing mutates the configuration while a file is being rewritten.

Examples
--------
>>> from autometrics_gen.settings import GeneratorSettings, build_config
>>> settings = GeneratorSettings(gofile="main.go", gopackage="main")
>>> config = build_config(settings)
>>> config.prometheus_url
'http://localhost:9090/'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from autometrics_gen.errors import ConfigError
from autometrics_gen.logging import get_logger

__all__ = [
    "DEFAULT_LATENCY_BUCKETS",
    "DEFAULT_PROMETHEUS_URL",
    "LIBRARY_PATHS",
    "Backend",
    "GeneratorConfig",
    "GeneratorSettings",
    "build_config",
    "load_settings",
]

logger = get_logger(__name__)

DEFAULT_PROMETHEUS_URL: Final[str] = "http://localhost:9090/"

# Boundaries (seconds) of the latency histogram the runtime library registers.
DEFAULT_LATENCY_BUCKETS: Final[tuple[float, ...]] = (
    0.005,
    0.0075,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)


class Backend(StrEnum):
    """Metric backend the synthesized statements call into."""

    PROMETHEUS = "prometheus"
    OTEL = "otel"


LIBRARY_PATHS: Final[dict[Backend, str]] = {
    Backend.PROMETHEUS: "github.com/autometrics-dev/autometrics-go/prometheus/autometrics",
    Backend.OTEL: "github.com/autometrics-dev/autometrics-go/otel/autometrics",
}


class GeneratorSettings(BaseSettings):
    """Environment configuration.

    ``GOFILE`` and ``GOPACKAGE`` are set by ``go generate``; the ``AM_*``
    variables are generator specific.
    """

    model_config = SettingsConfigDict(
        extra="forbid", case_sensitive=False, populate_by_name=True
    )

    gofile: str | None = Field(
        default=None, description="Source file to rewrite (set by go generate)"
    )
    gopackage: str | None = Field(
        default=None, description="Package of the source file (set by go generate)"
    )
    prometheus_url: str = Field(
        default=DEFAULT_PROMETHEUS_URL,
        validation_alias="AM_PROMETHEUS_URL",
        description="Base URL of the Prometheus UI used in generated links",
    )
    no_docgen: bool = Field(
        default=False,
        validation_alias="AM_NO_DOCGEN",
        description="Disable documentation generation for every function",
    )
    latency_buckets: tuple[float, ...] = Field(
        default=DEFAULT_LATENCY_BUCKETS,
        validation_alias="AM_LATENCY_BUCKETS",
        description="Latency histogram boundaries in seconds (JSON list)",
    )


@dataclass(frozen=True, slots=True)
class GeneratorConfig:
    """Immutable process-wide configuration.

    Attributes
    ----------
    file_path : Path
        Go source file to rewrite.
    module_name : str
        Go package of the file.
    backend : Backend
        Metric backend; selects the instrumentation library import path.
    prometheus_url : str
        Base URL of the metrics query UI.
    allow_custom_latencies : bool
        Accept latency targets that are not histogram bucket boundaries.
    disable_doc_generation : bool
        Never generate documentation regions.
    instrument_everything : bool
        Treat every function as carrying an empty ``//autometrics:inst``.
    remove_everything : bool
        Remove all generated code and ignore directives.
    latency_buckets : tuple[float, ...]
        Histogram boundaries in seconds.
    """

    file_path: Path
    module_name: str = "main"
    backend: Backend = Backend.PROMETHEUS
    prometheus_url: str = DEFAULT_PROMETHEUS_URL
    allow_custom_latencies: bool = False
    disable_doc_generation: bool = False
    instrument_everything: bool = False
    remove_everything: bool = False
    latency_buckets: tuple[float, ...] = field(default=DEFAULT_LATENCY_BUCKETS)

    @property
    def library_path(self) -> str:
        """Import path of the active instrumentation library."""
        return LIBRARY_PATHS[self.backend]


def load_settings(**overrides: object) -> GeneratorSettings:
    """Read settings from the environment with fail-fast validation.

    Parameters
    ----------
    **overrides : object
        Values taking precedence over the environment.

    Returns
    -------
    GeneratorSettings
        Validated settings.

    Raises
    ------
    ConfigError
        If an environment variable has an invalid value.
    """
    try:
        return GeneratorSettings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        message = f"Configuration validation failed: {exc}"
        logger.error(
            "Settings validation failed",
            extra={"operation": "settings", "error_type": type(exc).__name__},
        )
        raise ConfigError(message, cause=exc) from exc


def build_config(
    settings: GeneratorSettings,
    *,
    file_path: str | Path | None = None,
    module_name: str | None = None,
    backend: Backend = Backend.PROMETHEUS,
    prometheus_url: str | None = None,
    allow_custom_latencies: bool = False,
    disable_doc_generation: bool = False,
    instrument_everything: bool = False,
    remove_everything: bool = False,
) -> GeneratorConfig:
    """Freeze settings and command-line flags into a :class:`GeneratorConfig`.

    Explicit arguments win over the environment.

    Raises
    ------
    ConfigError
        If no file is given, or if the instrument/remove everything flags are
        combined.
    """
    path = file_path or settings.gofile
    if not path:
        message = "no source file given: pass --file or run through go generate (GOFILE)"
        raise ConfigError(message)
    if instrument_everything and remove_everything:
        message = "--instrument-everything and --remove-everything are mutually exclusive"
        raise ConfigError(message)
    return GeneratorConfig(
        file_path=Path(path),
        module_name=module_name or settings.gopackage or "main",
        backend=backend,
        prometheus_url=prometheus_url or settings.prometheus_url,
        allow_custom_latencies=allow_custom_latencies,
        disable_doc_generation=disable_doc_generation or settings.no_docgen,
        instrument_everything=instrument_everything,
        remove_everything=remove_everything,
        latency_buckets=tuple(sorted(settings.latency_buckets)),
    )
