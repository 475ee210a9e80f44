"""
API request and response models for the CoilLedger REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models import Role

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class OperationRequest(BaseModel):
    """Request body for POST /api/v1/invoke and POST /api/v1/query.

    Operation names are validated by the dispatcher, not here, so unknown
    names get the same unknown_operation error on every transport.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    function: str = Field(min_length=1, max_length=64)
    args: list[str] = Field(default_factory=list, max_length=8)


class ParticipantCreate(BaseModel):
    """Request body for POST /api/v1/participants."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identity: str = Field(min_length=1, max_length=255)
    role: Role
    ecert: str = Field(default="", max_length=8192)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class OperationResponse(BaseModel):
    """Result of an invoke or query call.

    result holds the decoded payload: parsed JSON when the payload is JSON
    (assets, lists, booleans), the raw text otherwise, None when empty.
    """

    model_config = ConfigDict(frozen=True)

    function: str
    result: Any = None

    @classmethod
    def from_payload(cls, function: str, payload: bytes) -> "OperationResponse":
        if not payload:
            return cls(function=function)
        text = payload.decode("utf-8", errors="replace")
        try:
            return cls(function=function, result=json.loads(text))
        except ValueError:
            return cls(function=function, result=text)


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: str
    role: Role


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
