from __future__ import annotations

from pathlib import Path

import pytest

from autometrics_gen.errors import ConfigError
from autometrics_gen.settings import (
    DEFAULT_LATENCY_BUCKETS,
    DEFAULT_PROMETHEUS_URL,
    LIBRARY_PATHS,
    Backend,
    build_config,
    load_settings,
)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.gofile is None
    assert settings.prometheus_url == DEFAULT_PROMETHEUS_URL
    assert not settings.no_docgen
    assert settings.latency_buckets == DEFAULT_LATENCY_BUCKETS


def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOFILE", "handlers.go")
    monkeypatch.setenv("GOPACKAGE", "api")
    monkeypatch.setenv("AM_PROMETHEUS_URL", "http://prometheus:9090/")
    monkeypatch.setenv("AM_NO_DOCGEN", "true")
    monkeypatch.setenv("AM_LATENCY_BUCKETS", "[0.5, 0.1, 1.0]")

    config = build_config(load_settings())

    assert config.file_path == Path("handlers.go")
    assert config.module_name == "api"
    assert config.prometheus_url == "http://prometheus:9090/"
    assert config.disable_doc_generation
    assert config.latency_buckets == (0.1, 0.5, 1.0)


def test_flags_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOFILE", "handlers.go")
    monkeypatch.setenv("AM_PROMETHEUS_URL", "http://prometheus:9090/")

    config = build_config(
        load_settings(),
        file_path="other.go",
        prometheus_url="http://localhost:9091/",
        backend=Backend.OTEL,
    )

    assert config.file_path == Path("other.go")
    assert config.module_name == "main"
    assert config.prometheus_url == "http://localhost:9091/"
    assert config.library_path == LIBRARY_PATHS[Backend.OTEL]


def test_invalid_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AM_LATENCY_BUCKETS", '["fast"]')

    with pytest.raises(ConfigError, match="Configuration validation failed"):
        load_settings()


def test_file_is_required() -> None:
    with pytest.raises(ConfigError, match="no source file given"):
        build_config(load_settings())


def test_everything_flags_are_exclusive() -> None:
    with pytest.raises(ConfigError, match="mutually exclusive"):
        build_config(
            load_settings(),
            file_path="main.go",
            instrument_everything=True,
            remove_everything=True,
        )
