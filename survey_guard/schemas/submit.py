"""Pydantic schemas for survey submissions.

Wire field names follow the front end (``nom``, ``prenom``, ``userId``,
``questionId``...); Python attributes use English names.
"""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# Letters (including accented Latin), spaces, hyphens, apostrophes
NAME_PATTERN = r"^[a-zA-ZÀ-ÿ\s'-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AnswerIn(BaseModel):
    """One answered question."""

    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(..., alias="questionId", min_length=1)
    question_text: str = Field(..., alias="questionText", min_length=1, max_length=500)
    answer: str = Field(..., min_length=1, max_length=1000)

    @field_validator("question_id", mode="before")
    @classmethod
    def _question_id_to_str(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("Question ID must be a string or a positive integer")
        if isinstance(value, int):
            if value <= 0:
                raise ValueError("Question ID must be a positive number")
            return str(value)
        return value

    @field_validator("answer", mode="before")
    @classmethod
    def _answer_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class SubmitRequest(BaseModel):
    """Full survey submission."""

    model_config = ConfigDict(populate_by_name=True)

    last_name: str = Field(..., alias="nom", min_length=2, max_length=50, pattern=NAME_PATTERN)
    first_name: str = Field(..., alias="prenom", min_length=2, max_length=50, pattern=NAME_PATTERN)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=254)
    user_id: str | None = Field(default=None, alias="userId")
    answers: List[AnswerIn] = Field(..., min_length=1, max_length=100)

    @field_validator("last_name", "first_name", "user_id", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


_FIELD_LABELS = {"nom": "Nom", "prenom": "Prénom"}


def format_validation_errors(error: ValidationError) -> list[str]:
    """Turn pydantic errors into short per-field messages.

    Examples:
        ``Nom: String should have at least 2 characters``
        ``Réponse #2 (answer): Field required``
    """

    messages: list[str] = []
    for err in error.errors():
        loc = [str(part) for part in err["loc"]]
        message = err["msg"]
        if loc and loc[0] in _FIELD_LABELS:
            messages.append(f"{_FIELD_LABELS[loc[0]]}: {message}")
        elif loc and loc[0] == "answers":
            index = f" #{int(loc[1]) + 1}" if len(loc) > 1 and loc[1].isdigit() else ""
            field = f" ({loc[2]})" if len(loc) > 2 else ""
            messages.append(f"Réponse{index}{field}: {message}")
        else:
            path = ".".join(loc)
            messages.append(f"{path}: {message}" if path else message)
    return messages

