"""Fixtures shared by the generator tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from autometrics_gen.settings import GeneratorConfig


@pytest.fixture
def config(tmp_path: Path) -> GeneratorConfig:
    return GeneratorConfig(file_path=tmp_path / "main.go")


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GOFILE", "GOPACKAGE", "AM_PROMETHEUS_URL", "AM_NO_DOCGEN", "AM_LATENCY_BUCKETS"):
        monkeypatch.delenv(name, raising=False)
