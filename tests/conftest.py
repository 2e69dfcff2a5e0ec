"""
Shared pytest fixtures for SMART launch tests.
"""

import asyncio
import json
import os
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio

# Set test environment variables before importing smartlaunch modules
# This ensures Settings validation passes during test collection
os.environ.setdefault("SMART_LAUNCH_DEBUG", "true")
os.environ.setdefault("SMART_LAUNCH_CLIENT_ID", "test-client")
os.environ["SMART_LAUNCH_SESSION_COOKIE_SECURE"] = "false"
# Ensure no Redis in tests - use in-memory storage
# Set to empty string to override any .env file value
os.environ["SMART_LAUNCH_REDIS_URL"] = ""
os.environ["SMART_LAUNCH_MASTER_KEY"] = ""

ISS = "https://fhir.example.com/r4"
AUTHORIZE_URL = "https://auth.example.com/authorize"
TOKEN_URL = "https://auth.example.com/token"


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singletons between tests to avoid state leakage."""
    from smartlaunch.auth.token_manager import reset_token_manager
    from smartlaunch.config.settings import reset_settings
    from smartlaunch.rate_limiter import reset_rate_limiter

    reset_settings()
    reset_token_manager()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    reset_token_manager()
    reset_settings()


class FakeResponse:
    """Stands in for an aiohttp response used as an async context manager."""

    def __init__(self, status: int = 200, body: Any = None, text: str | None = None):
        self.status = status
        self._body = body
        self._text = text if text is not None else (json.dumps(body) if body is not None else "")

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def json(self, content_type: str | None = "application/json") -> Any:
        if not self._text:
            return None
        return json.loads(self._text)

    async def text(self) -> str:
        return self._text


class FakeHTTP:
    """
    Routes aiohttp requests to canned responses by (method, url).

    URLs are matched without their query string; every request is recorded
    in ``calls`` as a dict of method, url, headers, data.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], FakeResponse] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, method: str, url: str, status: int = 200, body: Any = None, text: str | None = None):
        self.routes[(method.upper(), url)] = FakeResponse(status, body, text)

    def calls_to(self, url: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["url"].split("?", 1)[0] == url]

    async def __aenter__(self) -> "FakeHTTP":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def request(self, method: str, url: str, headers=None, data=None, **kwargs) -> FakeResponse:
        self.calls.append({"method": method.upper(), "url": url, "headers": headers or {}, "data": data})
        return self.routes.get((method.upper(), url.split("?", 1)[0]), FakeResponse(404, text="Not Found"))

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)


@pytest.fixture
def fake_http():
    """Patch aiohttp.ClientSession so every session is the returned FakeHTTP."""
    http = FakeHTTP()
    with patch("aiohttp.ClientSession", return_value=http):
        yield http


@pytest.fixture
def smart_configuration() -> dict[str, Any]:
    """Sample .well-known/smart-configuration document."""
    return {
        "authorization_endpoint": AUTHORIZE_URL,
        "token_endpoint": TOKEN_URL,
        "revocation_endpoint": "https://auth.example.com/revoke",
        "capabilities": ["launch-ehr", "client-public", "context-ehr-patient", "sso-openid-connect"],
        "code_challenge_methods_supported": ["S256"],
    }


@pytest.fixture
def capability_statement() -> dict[str, Any]:
    """Sample CapabilityStatement declaring SMART oauth-uris."""
    return {
        "resourceType": "CapabilityStatement",
        "status": "active",
        "fhirVersion": "4.0.1",
        "rest": [
            {
                "mode": "server",
                "security": {
                    "service": [{"coding": [{"code": "SMART-on-FHIR"}]}],
                    "extension": [
                        {
                            "url": "http://fhir-registry.smarthealthit.org/StructureDefinition/oauth-uris",
                            "extension": [
                                {"url": "authorize", "valueUri": AUTHORIZE_URL},
                                {"url": "token", "valueUri": TOKEN_URL},
                            ],
                        }
                    ],
                },
            }
        ],
    }


@pytest.fixture
def token_response() -> dict[str, Any]:
    """Sample token endpoint response with patient context."""
    return {
        "access_token": "test-access-token",
        "token_type": "Bearer",
        "expires_in": 3600,
        "scope": "launch/patient patient/Observation.read patient/Observation.write openid fhirUser",
        "patient": "pat-123",
        "need_patient_banner": True,
    }


@pytest.fixture
def smart_server(fake_http, smart_configuration, token_response) -> "FakeHTTP":
    """A FHIR issuer serving a SMART configuration and a working token endpoint."""
    fake_http.add("GET", f"{ISS}/.well-known/smart-configuration", body=smart_configuration)
    fake_http.add("POST", TOKEN_URL, body=token_response)
    return fake_http


@pytest.fixture
def token_manager():
    """The in-memory token manager singleton."""
    from smartlaunch.auth.token_manager import get_token_manager

    return get_token_manager()


@pytest_asyncio.fixture
async def stored_token(token_manager, token_response):
    """A session holding an unexpired token for ISS. Returns the session ID."""
    from smartlaunch.models.auth import SmartToken

    session_id = "session-with-token"
    await token_manager.store_token(session_id, SmartToken.model_validate({**token_response, "iss": ISS}))
    return session_id


@pytest.fixture
def sample_observation_bundle() -> dict[str, Any]:
    """Search result for the most recent glucose Observation."""
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [
            {
                "resource": {
                    "resourceType": "Observation",
                    "id": "obs-1",
                    "status": "final",
                    "code": {"coding": [{"system": "http://loinc.org", "code": "2345-7"}]},
                    "valueQuantity": {"value": 182, "unit": "mg/dL"},
                }
            }
        ],
    }


@pytest.fixture
def client():
    """Test client for the full application (lifespan not started)."""
    from fastapi.testclient import TestClient

    from smartlaunch.main import create_app

    return TestClient(create_app())


@pytest.fixture
def signed_in_client(client, token_manager, token_response):
    """Client whose session cookie refers to a stored, unexpired token for ISS."""
    from smartlaunch.constants import SESSION_COOKIE_NAME
    from smartlaunch.models.auth import SmartToken

    session_id = "signed-in-session"
    token = SmartToken.model_validate({**token_response, "iss": ISS})
    asyncio.run(token_manager.store_token(session_id, token))
    client.cookies.set(SESSION_COOKIE_NAME, session_id)
    return client
