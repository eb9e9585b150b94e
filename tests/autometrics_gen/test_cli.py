from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from autometrics_gen import __version__
from autometrics_gen import cli
from autometrics_gen.cli import app
from autometrics_gen.settings import GeneratorConfig, GeneratorSettings, build_config
from tests.autometrics_gen.helpers import OTEL_PATH, PROM_PATH, go

SOURCE = go(
    """
    package main

    //autometrics:inst --slo api --success-target 99
    func main() {}
    """
)


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    handlers, level = logging.root.handlers[:], logging.root.level
    yield
    logging.root.handlers[:] = handlers
    logging.root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "main.go"
    path.write_bytes(SOURCE)
    return path


def test_rewrites_file_from_go_generate_environment(
    runner: CliRunner, source_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(source_file.parent)

    result = runner.invoke(app, [], env={"GOFILE": "main.go", "GOPACKAGE": "main"})

    assert result.exit_code == 0, result.output
    text = source_file.read_text(encoding="utf-8")
    assert f'import "{PROM_PATH}"' in text
    assert "autometrics.WithAlertSuccess(99)," in text


def test_single_dash_flags(runner: CliRunner, source_file: Path) -> None:
    result = runner.invoke(app, ["--file", str(source_file), "-otel", "-custom-latency"])

    assert result.exit_code == 0, result.output
    assert f'import "{OTEL_PATH}"' in source_file.read_text(encoding="utf-8")


def test_prom_url_and_no_doc(runner: CliRunner, source_file: Path) -> None:
    result = runner.invoke(
        app, ["--file", str(source_file), "--prom-url", "http://prometheus.internal:9090/"]
    )

    assert result.exit_code == 0, result.output
    assert "http://prometheus.internal:9090/graph?" in source_file.read_text(encoding="utf-8")

    result = runner.invoke(app, ["--file", str(source_file), "--no-doc"])

    assert result.exit_code == 0, result.output
    assert "autometrics:doc-start" not in source_file.read_text(encoding="utf-8")


def test_generator_error_exits_with_one(runner: CliRunner, tmp_path: Path) -> None:
    path = tmp_path / "main.go"
    original = go(
        """
        package main

        //autometrics:inst --success-target 90
        func main() {}
        """
    )
    path.write_bytes(original)

    result = runner.invoke(app, ["--file", str(path)])

    assert result.exit_code == 1
    assert "target percentage set without a service name" in result.output
    assert "function: main" in result.output
    assert path.read_bytes() == original


def test_missing_file_argument(runner: CliRunner) -> None:
    result = runner.invoke(app, [])

    assert result.exit_code == 1
    assert "no source file given" in result.output


def test_exclusive_flags(runner: CliRunner, source_file: Path) -> None:
    result = runner.invoke(
        app,
        ["--file", str(source_file), "--instrument-everything", "--remove-everything"],
    )

    assert result.exit_code == 1
    assert "mutually exclusive" in result.output


def test_unknown_log_level_is_a_usage_error(runner: CliRunner, source_file: Path) -> None:
    result = runner.invoke(app, ["--file", str(source_file), "--log-level", "chatty"])

    assert result.exit_code == 2


def test_metrics_file(runner: CliRunner, source_file: Path, tmp_path: Path) -> None:
    metrics = tmp_path / "generator.prom"

    result = runner.invoke(app, ["--file", str(source_file), "--metrics-file", str(metrics)])

    assert result.exit_code == 0, result.output
    assert "autometrics_gen_functions_total" in metrics.read_text(encoding="utf-8")


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert result.output.strip() == f"autometrics {__version__}"


def test_short_module_flag(
    runner: CliRunner, source_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen: list[GeneratorConfig] = []

    def capture(settings: GeneratorSettings, **overrides: object) -> GeneratorConfig:
        config = build_config(settings, **overrides)  # type: ignore[arg-type]
        seen.append(config)
        return config

    monkeypatch.setattr(cli, "build_config", capture)

    result = runner.invoke(app, ["-f", str(source_file), "-m", "server"])

    assert result.exit_code == 0, result.output
    assert seen[0].module_name == "server"
