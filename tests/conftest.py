"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment before ``survey_guard.core.config`` is imported so
no developer .env file, Redis URL or fallback directory leaks into tests.
"""

import os
import tempfile

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.pop("STORE_REDIS_URL", None)
os.environ.setdefault("STORE_FALLBACK_DIR", tempfile.mkdtemp(prefix="survey_guard_tests_"))
os.environ.setdefault("VERIFY_ALLOWED_DOMAIN", "castel-afrique.com")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from survey_guard.adapters.mail.base import AbstractMailer, MailDeliveryError
from survey_guard.adapters.workflow.base import AbstractWorkflowClient
from survey_guard.api.dependencies import get_mailer, get_workflow_client
from survey_guard.core.app_factory import create_app
from survey_guard.core.config import StoreSettings, settings
from survey_guard.core.guard import Guard, build_guard


class FakeClock:
    """Deterministic time source for ``clock=`` parameters."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer(AbstractMailer):
    """Mailer keeping sent messages in memory; can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.codes: list[tuple[str, str]] = []
        self.confirmations: list[tuple[str, str, str]] = []

    async def send_verification_code(self, to: str, code: str) -> None:
        if self.fail:
            raise MailDeliveryError("smtp down")
        self.codes.append((to, code))

    async def send_submission_confirmation(self, to: str, first_name: str, last_name: str) -> None:
        if self.fail:
            raise MailDeliveryError("smtp down")
        self.confirmations.append((to, first_name, last_name))


class FakeWorkflowClient(AbstractWorkflowClient):
    """Workflow backend double recording payloads; raises ``error`` when set."""

    def __init__(self, response: dict[str, Any] | None = None) -> None:
        self.response = response or {}
        self.error: Exception | None = None
        self.payloads: list[dict[str, Any]] = []

    async def submit(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)
        return dict(self.response)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path):
    """Global settings with the fallback directory moved under tmp_path."""
    store = StoreSettings(fallback_dir=str(tmp_path / "fallback"))
    return settings.model_copy(update={"store": store})


@pytest.fixture
def guard(test_settings, clock: FakeClock) -> Guard:
    return build_guard(test_settings, clock=clock)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def workflow() -> FakeWorkflowClient:
    return FakeWorkflowClient(response={"id": "wf-1"})


@pytest.fixture
def app(guard: Guard, mailer: RecordingMailer, workflow: FakeWorkflowClient) -> FastAPI:
    application = create_app(guard=guard)
    application.dependency_overrides[get_mailer] = lambda: mailer
    application.dependency_overrides[get_workflow_client] = lambda: workflow
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create FastAPI test client."""
    return TestClient(app)
