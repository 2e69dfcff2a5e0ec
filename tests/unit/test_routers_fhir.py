"""
Tests for the FHIR proxy router.
"""

import json

import aiohttp

ISS = "https://fhir.example.com/r4"
CSRF = {"X-Requested-With": "XMLHttpRequest"}


class TestFetchResource:
    """Tests for GET /api/fhir/{resource_path}."""

    def test_requires_session(self, client, fake_http):
        """Without a session cookie the call is a 401 and nothing is sent."""
        response = client.get("/api/fhir/Patient/pat-123")

        assert response.status_code == 401
        assert response.json()["error"] == "NoTokenError"
        assert fake_http.calls == []

    def test_reads_resource(self, signed_in_client, fake_http):
        """Should GET the issuer URL with the bearer token."""
        fake_http.add("GET", f"{ISS}/Patient/pat-123", body={"resourceType": "Patient", "id": "pat-123"})

        response = signed_in_client.get("/api/fhir/Patient/pat-123")

        assert response.status_code == 200
        assert response.json()["id"] == "pat-123"
        call = fake_http.calls_to(f"{ISS}/Patient/pat-123")[0]
        assert call["headers"]["Authorization"] == "Bearer test-access-token"

    def test_forwards_query_string(self, signed_in_client, fake_http, sample_observation_bundle):
        fake_http.add("GET", f"{ISS}/Observation", body=sample_observation_bundle)

        response = signed_in_client.get(
            "/api/fhir/Observation", params={"patient": "pat-123", "_count": "1"}
        )

        assert response.status_code == 200
        url = fake_http.calls_to(f"{ISS}/Observation")[0]["url"]
        assert url == f"{ISS}/Observation?patient=pat-123&_count=1"

    def test_not_found_passes_through(self, signed_in_client, fake_http):
        """A 4xx from the FHIR server keeps its status."""
        response = signed_in_client.get("/api/fhir/Patient/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "SmartRequestError"

    def test_server_error_is_bad_gateway(self, signed_in_client, fake_http):
        fake_http.add("GET", f"{ISS}/Patient/pat-123", status=503, text="unavailable")

        response = signed_in_client.get("/api/fhir/Patient/pat-123")

        assert response.status_code == 502

    def test_unreachable_server(self, signed_in_client, fake_http):
        """A connection failure should answer 502."""

        def refuse(*args, **kwargs):
            raise aiohttp.ClientConnectionError("connection refused")

        fake_http.request = refuse

        response = signed_in_client.get("/api/fhir/Patient/pat-123")

        assert response.status_code == 502
        assert response.json()["error"] == "UpstreamError"

    def test_rejects_absolute_path(self, signed_in_client, fake_http):
        """A path that leaves the issuer should be refused before sending."""
        response = signed_in_client.get("/api/fhir/https://evil.example.com/steal")

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidResourcePathError"
        assert fake_http.calls == []


class TestModifyResource:
    """Tests for write methods on /api/fhir/{resource_path}."""

    def test_requires_csrf_header(self, signed_in_client, fake_http):
        response = signed_in_client.post("/api/fhir/Observation", json={"resourceType": "Observation"})

        assert response.status_code == 403
        assert fake_http.calls == []

    def test_forwards_body(self, signed_in_client, fake_http):
        """The body should be sent as FHIR JSON."""
        fake_http.add("POST", f"{ISS}/Observation", status=201, body={"resourceType": "Observation", "id": "new"})
        observation = {"resourceType": "Observation", "status": "final"}

        response = signed_in_client.post("/api/fhir/Observation", json=observation, headers=CSRF)

        assert response.status_code == 200
        assert response.json()["id"] == "new"
        call = fake_http.calls_to(f"{ISS}/Observation")[0]
        assert call["method"] == "POST"
        assert json.loads(call["data"]) == observation
        assert call["headers"]["Content-Type"] == "application/fhir+json"

    def test_delete_without_body(self, signed_in_client, fake_http):
        fake_http.add("DELETE", f"{ISS}/Observation/obs-1", status=204, text="")

        response = signed_in_client.delete("/api/fhir/Observation/obs-1", headers=CSRF)

        assert response.status_code == 200
        call = fake_http.calls_to(f"{ISS}/Observation/obs-1")[0]
        assert call["method"] == "DELETE"
        assert call["data"] is None
