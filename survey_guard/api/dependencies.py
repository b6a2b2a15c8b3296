"""Request-scoped accessors for objects owned by the app instance."""

from __future__ import annotations

from fastapi import Request

from survey_guard.adapters.mail.base import AbstractMailer
from survey_guard.adapters.workflow.base import AbstractWorkflowClient
from survey_guard.core.guard import Guard


def get_guard(request: Request) -> Guard:
    return request.app.state.guard


def get_mailer(request: Request) -> AbstractMailer:
    return request.app.state.mailer


def get_workflow_client(request: Request) -> AbstractWorkflowClient:
    return request.app.state.workflow_client
