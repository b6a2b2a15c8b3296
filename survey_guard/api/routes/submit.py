import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from survey_guard.adapters.mail.base import AbstractMailer
from survey_guard.adapters.rate_limit.policies import SUBMIT
from survey_guard.adapters.workflow.base import AbstractWorkflowClient
from survey_guard.api.dependencies import get_guard, get_mailer, get_workflow_client
from survey_guard.core.errors import DuplicateSubmissionError, ValidationAppError
from survey_guard.core.guard import Guard
from survey_guard.core.logging import hash_prefix
from survey_guard.core.rate_limit import get_client_ip, rate_limit
from survey_guard.schemas.submit import SubmitRequest, format_validation_errors
from survey_guard.services.notifications import deliver_submission_confirmation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Submissions"])

FINGERPRINT_HEADER = "x-browser-fingerprint"
MAX_FINGERPRINT_CHARS = 128


def _generate_user_id() -> str:
    return f"user_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def build_workflow_payload(submission: SubmitRequest, user_id: str) -> dict[str, Any]:
    """Shape a validated submission for the workflow backend.

    Answers are sent as strings under ``reponse``; the backend stores text only.
    """
    return {
        "nom": submission.last_name,
        "prenom": submission.first_name,
        "email": submission.email,
        "userId": user_id,
        "createdOn": datetime.now(timezone.utc).isoformat(),
        "answers": [
            {
                "questionId": answer.question_id,
                "questionText": answer.question_text,
                "reponse": answer.answer,
            }
            for answer in submission.answers
        ],
    }


@router.post("/submit", dependencies=[Depends(rate_limit(SUBMIT))])
async def submit_survey(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    guard: Guard = Depends(get_guard),
    workflow: AbstractWorkflowClient = Depends(get_workflow_client),
    mailer: AbstractMailer = Depends(get_mailer),
) -> dict[str, Any]:
    """Accept a survey submission once per caller.

    Steps: validate, reject duplicates for the IP(+fingerprint) identity,
    forward to the workflow backend, then record the submission. The record is
    written only after the backend accepted the answers, so a downstream
    failure never locks the caller out.

    Raises:
        ValidationAppError: 400 with per-field messages.
        DuplicateSubmissionError: 409 with the prior submission time.
        UpstreamAppError: 502 when the workflow backend fails.
    """
    try:
        submission = SubmitRequest.model_validate(payload)
    except ValidationError as exc:
        raise ValidationAppError(
            code="invalid_submission",
            message="Submission failed validation",
            details={"errors": format_validation_errors(exc)},
        ) from exc

    ip = get_client_ip(request)
    fingerprint = (request.headers.get(FINGERPRINT_HEADER) or "").strip()[:MAX_FINGERPRINT_CHARS] or None
    tracker = guard.submissions
    identifier = tracker.generate_identifier(ip, fingerprint)

    status = await run_in_threadpool(tracker.check, identifier)
    if status.has_submitted:
        logger.info("submission.duplicate_rejected", extra={"identifier_hash": hash_prefix(identifier)})
        details = {"submitted_at": status.submitted_at_iso} if status.submitted_at_iso else None
        raise DuplicateSubmissionError(
            code="already_submitted",
            message="You have already submitted this survey",
            details=details,
        )

    user_id = submission.user_id or _generate_user_id()
    data = await workflow.submit(build_workflow_payload(submission, user_id))

    await run_in_threadpool(tracker.record, identifier, ip, fingerprint)
    background_tasks.add_task(
        deliver_submission_confirmation,
        mailer,
        submission.email,
        submission.first_name,
        submission.last_name,
    )

    logger.info(
        "submission.accepted",
        extra={"identifier_hash": hash_prefix(identifier), "answers": len(submission.answers)},
    )
    return {
        **data,
        "success": True,
        "message": "Data submitted successfully",
        "userId": user_id,
    }
