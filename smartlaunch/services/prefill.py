"""
EHR lab prefill and score write-back.

Reads the latest numeric lab values a scoring tool needs (SCORTEN uses
serum urea nitrogen, glucose, and bicarbonate) and writes a computed score
back to the EHR as a numeric Observation.
"""

import asyncio
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from smartlaunch.auth.token_manager import SessionTokenManager
from smartlaunch.config.logging import get_logger
from smartlaunch.services.smart_client import smart_fetch, smart_request

logger = get_logger(__name__)

LOINC_SYSTEM = "http://loinc.org"
TOOL_EXTENSION_URL = "https://skinscores.com/fhir/tool"


@dataclass(frozen=True)
class Coding:
    """A FHIR Coding."""

    system: str
    code: str
    display: str

    @property
    def token(self) -> str:
        """Search token form: ``system|code``."""
        return f"{self.system}|{self.code}"

    def to_fhir(self) -> dict[str, str]:
        return {"system": self.system, "code": self.code, "display": self.display}


@dataclass(frozen=True)
class LoincCodes:
    """LOINC codes for labs the scoring tools prefill."""

    BUN: Coding = Coding(LOINC_SYSTEM, "3094-0", "Urea nitrogen [Mass/volume] in Serum or Plasma")
    GLUCOSE: Coding = Coding(LOINC_SYSTEM, "2345-7", "Glucose [Mass/volume] in Serum or Plasma")
    BICARB: Coding = Coding(LOINC_SYSTEM, "1963-8", "Bicarbonate [Moles/volume] in Serum or Plasma")


LOINC = LoincCodes()

PREFILL_LABS: dict[str, Coding] = {
    "bun": LOINC.BUN,
    "glucose": LOINC.GLUCOSE,
    "bicarb": LOINC.BICARB,
}


def observation_numeric(
    coding: Coding,
    value: float,
    unit: str,
    tool_id: str,
    tool_version: str,
    patient_id: str | None = None,
) -> dict[str, Any]:
    """
    Build a final numeric Observation tagged with the tool that produced it.

    Args:
        coding: What was measured
        value: Numeric result
        unit: Unit of the result
        tool_id: Scoring tool identifier, e.g. ``scorten``
        tool_version: Scoring tool version
        patient_id: Patient the observation is about, if known
    """
    observation: dict[str, Any] = {
        "resourceType": "Observation",
        "status": "final",
        "code": {"coding": [coding.to_fhir()], "text": coding.display},
        "valueQuantity": {"value": value, "unit": unit},
        "extension": [{"url": TOOL_EXTENSION_URL, "valueString": f"{tool_id}@{tool_version}"}],
    }
    if patient_id:
        observation["subject"] = {"reference": f"Patient/{patient_id}"}
    return observation


def _first_numeric_value(bundle: dict[str, Any] | None) -> float | None:
    entries = (bundle or {}).get("entry") or []
    if not entries:
        return None
    value = ((entries[0].get("resource") or {}).get("valueQuantity") or {}).get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


async def fetch_lab(
    session_id: str,
    coding: Coding,
    patient_id: str | None = None,
    token_manager: SessionTokenManager | None = None,
) -> float | None:
    """
    Fetch the most recent numeric value of a lab Observation.

    Returns:
        The value of the first matching Observation, or None if there is
        no match or it carries no numeric quantity
    """
    query = {"code": coding.token, "_sort": "-date"}
    if patient_id:
        query["patient"] = patient_id

    bundle = await smart_fetch(session_id, f"Observation?{urlencode(query)}", token_manager)
    value = _first_numeric_value(bundle)

    logger.debug("Lab prefill lookup", code=coding.code, found=value is not None)
    return value


async def prefill_scorten_labs(
    session_id: str,
    patient_id: str | None = None,
    token_manager: SessionTokenManager | None = None,
) -> dict[str, float | None]:
    """Fetch every prefillable lab, keyed as in PREFILL_LABS."""
    names = list(PREFILL_LABS)
    values = await asyncio.gather(
        *(fetch_lab(session_id, PREFILL_LABS[name], patient_id, token_manager) for name in names)
    )
    return dict(zip(names, values))


async def write_observation_numeric(
    session_id: str,
    coding: Coding,
    value: float,
    unit: str,
    tool_id: str,
    tool_version: str,
    patient_id: str | None = None,
    token_manager: SessionTokenManager | None = None,
) -> Any:
    """
    POST a numeric Observation to the EHR.

    Returns:
        The server's response (usually the created Observation)
    """
    body = observation_numeric(coding, value, unit, tool_id, tool_version, patient_id)
    created = await smart_request(
        session_id,
        "Observation",
        method="POST",
        body=body,
        token_manager=token_manager,
    )
    logger.info("Observation written", code=coding.code, tool_id=tool_id)
    return created
