"""Test configuration and fixtures."""

from __future__ import annotations

import io
import os

import pytest

from activity_workflows.engine.config import EngineSettings
from activity_workflows.engine.runtime import WorkflowRuntime
from activity_workflows.engine.services import CONSOLE, ServiceProvider


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's WORKFLOW_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("WORKFLOW_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def console() -> io.StringIO:
    """Capture what WriteLine activities print."""
    return io.StringIO()


@pytest.fixture
def services(console: io.StringIO) -> ServiceProvider:
    provider = ServiceProvider()
    provider.register(CONSOLE, console)
    return provider


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(_env_file=None)


@pytest.fixture
def runtime(settings: EngineSettings, services: ServiceProvider) -> WorkflowRuntime:
    """A runtime with an in-memory store."""
    return WorkflowRuntime(settings=settings, services=services)
