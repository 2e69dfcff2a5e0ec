"""
Scoring-tool EHR integration endpoints.

- GET /api/prefill - Latest SCORTEN lab values for the launch patient
- GET /api/prefill/{lab} - Latest value of one prefillable lab
- POST /api/observations - Write a computed score back as an Observation
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from smartlaunch.auth.token_manager import get_token_manager
from smartlaunch.errors import NoTokenError
from smartlaunch.models.auth import SmartToken
from smartlaunch.routers.session import get_session_id, require_csrf_header
from smartlaunch.services.prefill import (
    LOINC_SYSTEM,
    PREFILL_LABS,
    Coding,
    fetch_lab,
    prefill_scorten_labs,
    write_observation_numeric,
)

router = APIRouter(tags=["prefill"])


class CodingIn(BaseModel):
    """Coding of the value being written."""

    system: str = LOINC_SYSTEM
    code: str = Field(..., min_length=1)
    display: str = ""


class ObservationWriteRequest(BaseModel):
    """A numeric result produced by a scoring tool."""

    coding: CodingIn
    value: float
    unit: str = Field(..., min_length=1)
    tool_id: str = Field(..., min_length=1, description="Scoring tool identifier, e.g. scorten")
    tool_version: str = Field(..., min_length=1)


async def _session_token(request: Request) -> tuple[str, SmartToken]:
    session_id = get_session_id(request, create_if_missing=False)
    token = await get_token_manager().get_token(session_id) if session_id else None
    if not session_id or token is None:
        raise NoTokenError()
    return session_id, token


@router.get("/api/prefill")
async def prefill_all(request: Request) -> dict[str, Any]:
    """Fetch every SCORTEN lab for the launch patient. Missing labs are null."""
    session_id, token = await _session_token(request)
    labs = await prefill_scorten_labs(session_id, token.patient)
    return {"patient": token.patient, "labs": labs}


@router.get("/api/prefill/{lab}")
async def prefill_one(lab: str, request: Request) -> dict[str, Any]:
    """Fetch the latest value of one lab (``bun``, ``glucose`` or ``bicarb``)."""
    coding = PREFILL_LABS.get(lab.lower())
    if coding is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown lab '{lab}'. Expected one of: {', '.join(sorted(PREFILL_LABS))}",
        )

    session_id, token = await _session_token(request)
    value = await fetch_lab(session_id, coding, token.patient)
    return {"lab": lab.lower(), "code": coding.code, "value": value}


@router.post("/api/observations", status_code=201)
async def write_observation(payload: ObservationWriteRequest, request: Request) -> Any:
    """
    Write a numeric Observation for the launch patient.

    Requires the X-Requested-With header.
    """
    require_csrf_header(request)
    session_id, token = await _session_token(request)

    coding = Coding(payload.coding.system, payload.coding.code, payload.coding.display)
    return await write_observation_numeric(
        session_id,
        coding,
        payload.value,
        payload.unit,
        payload.tool_id,
        payload.tool_version,
        patient_id=token.patient,
    )
