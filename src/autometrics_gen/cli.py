"""Command line interface run by ``go generate``.

A Go file opts in with::

    //go:generate autometrics --otel

``go generate`` exports ``GOFILE`` and ``GOPACKAGE``, so no argument is
needed in the common case. The single-dash spellings ``-otel`` and
``-custom-latency`` are accepted as well.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from autometrics_gen import __version__
from autometrics_gen.errors import GeneratorError
from autometrics_gen.logging import get_logger, setup_logging, with_fields
from autometrics_gen.metrics import write_metrics
from autometrics_gen.rewriter import FileRewriter
from autometrics_gen.settings import Backend, build_config, load_settings

__all__ = ["app", "generate", "main"]

LOGGER = get_logger(__name__)

app = typer.Typer(
    help="Instrument annotated Go functions with Autometrics.",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"autometrics {__version__}")
        raise typer.Exit


def _report(exc: GeneratorError) -> None:
    typer.echo(f"autometrics: {exc}", err=True)
    for key, value in sorted(exc.context.items()):
        typer.echo(f"  {key}: {value}", err=True)


@app.command()
def generate(  # noqa: PLR0913
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Go source file to rewrite [default: $GOFILE]."),
    ] = None,
    module: Annotated[
        str | None,
        typer.Option("--module", "-m", help="Package of the file [default: $GOPACKAGE]."),
    ] = None,
    otel: Annotated[
        bool,
        typer.Option("--otel", "-otel", help="Use the OpenTelemetry backend."),
    ] = False,
    custom_latency: Annotated[
        bool,
        typer.Option(
            "--custom-latency",
            "-custom-latency",
            help="Allow latency targets that are not histogram bucket boundaries.",
        ),
    ] = False,
    prom_url: Annotated[
        str | None,
        typer.Option(
            "--prom-url",
            help="Prometheus UI URL used in generated links [default: $AM_PROMETHEUS_URL].",
        ),
    ] = None,
    no_doc: Annotated[
        bool,
        typer.Option("--no-doc", help="Do not generate documentation regions."),
    ] = False,
    instrument_everything: Annotated[
        bool,
        typer.Option("--instrument-everything", help="Instrument every function with a body."),
    ] = False,
    remove_everything: Annotated[
        bool,
        typer.Option("--remove-everything", help="Remove all generated code and documentation."),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level.", show_default=True),
    ] = "WARNING",
    log_json: Annotated[
        bool,
        typer.Option("--log-json", help="Emit log records as JSON lines."),
    ] = False,
    metrics_file: Annotated[
        Path | None,
        typer.Option(
            "--metrics-file",
            help="Write generator metrics to this file in Prometheus text format.",
        ),
    ] = None,
    version: Annotated[  # noqa: ARG001
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit.",
        ),
    ] = False,
) -> None:
    """Rewrite one Go source file in place.

    Raises
    ------
    typer.Exit
        With code 1 when the file cannot be rewritten.
    typer.BadParameter
        On an unknown log level.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        message = f"unknown log level {log_level!r}"
        raise typer.BadParameter(message, param_hint="--log-level")
    setup_logging(level, json_format=log_json)

    try:
        try:
            settings = load_settings()
            config = build_config(
                settings,
                file_path=file,
                module_name=module,
                backend=Backend.OTEL if otel else Backend.PROMETHEUS,
                prometheus_url=prom_url,
                allow_custom_latencies=custom_latency,
                disable_doc_generation=no_doc,
                instrument_everything=instrument_everything,
                remove_everything=remove_everything,
            )
            fields = {"file": str(config.file_path), "backend": config.backend.value}
            with with_fields(LOGGER, operation="generate", **fields) as log:
                result = FileRewriter(config).rewrite_file()
                log.info(
                    "Generation completed",
                    extra={"status": "success", "instrumented": result.instrumented},
                )
        except GeneratorError as exc:
            LOGGER.log(
                exc.log_level,
                "Generation failed: %s",
                exc,
                extra={"operation": "generate", "error_code": exc.code.value},
            )
            _report(exc)
            raise typer.Exit(code=1) from exc
    finally:
        if metrics_file is not None:
            write_metrics(metrics_file)


def main() -> None:
    """Console script entry point."""
    app(prog_name="autometrics", args=sys.argv[1:])
