"""Pydantic schemas for email code verification endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RequestCodeBody(BaseModel):
    email: str | None = Field(default=None, description="Address to send the code to.")


class RequestCodeResponse(BaseModel):
    message: str = Field(..., description="Human-readable confirmation.")
    ttl_ms: int = Field(..., description="Lifetime of the issued code in milliseconds.")
    attempts: int = Field(..., description="Failed checks allowed before the code is burned.")


class VerifyCodeBody(BaseModel):
    email: str | None = Field(default=None, description="Address the code was sent to.")
    code: str | None = Field(default=None, description="Numeric one-time code.")


class VerifyCodeResponse(BaseModel):
    verified: bool = Field(..., description="Always true; failures are returned as errors.")
    email: str = Field(..., description="Normalized address that was verified.")
    message: str
