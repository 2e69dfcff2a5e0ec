"""
Tests for SMART launch types and scope parsing.
"""

import pytest

from smartlaunch.auth.smart import (
    SmartLaunchType,
    SmartScope,
    SmartScopeCategory,
    parse_smart_scopes,
    resources_with_permission,
)


class TestSmartLaunchType:
    """Tests for SmartLaunchType enum."""

    def test_ehr_launch_when_token_present(self):
        """A launch token means an EHR launch."""
        assert SmartLaunchType.for_launch_token("xyz") is SmartLaunchType.EHR_LAUNCH

    @pytest.mark.parametrize("launch", [None, ""])
    def test_standalone_without_token(self, launch):
        """No launch token means a standalone launch."""
        assert SmartLaunchType.for_launch_token(launch) is SmartLaunchType.STANDALONE


class TestSmartScope:
    """Tests for SmartScope dataclass."""

    def test_read_only(self):
        scope = SmartScope(raw="patient/Observation.read", permissions=["read"])
        assert scope.can_read is True
        assert scope.can_write is False

    def test_v2_create_counts_as_write(self):
        scope = SmartScope(raw="patient/Observation.c", permissions=["create"])
        assert scope.can_read is False
        assert scope.can_write is True

    def test_str_returns_raw(self):
        assert str(SmartScope(raw="openid")) == "openid"


class TestParseSmartScopes:
    """Tests for parse_smart_scopes function."""

    def test_default_launch_scope(self):
        """Should parse every scope the app requests by default."""
        scopes = parse_smart_scopes(
            "launch/patient patient/*.read patient/*.write openid fhirUser online_access"
        )

        assert [s.category for s in scopes] == [
            SmartScopeCategory.LAUNCH,
            SmartScopeCategory.PATIENT,
            SmartScopeCategory.PATIENT,
            SmartScopeCategory.OPENID,
            SmartScopeCategory.FHIRUSER,
            SmartScopeCategory.ONLINE,
        ]
        assert scopes[0].resource_type == "patient"
        assert scopes[1].resource_type == "*"
        assert scopes[1].permissions == ["read"]
        assert scopes[2].permissions == ["write"]

    def test_v1_wildcard_permission(self):
        """Should expand .* to read and write."""
        scope = parse_smart_scopes("user/Patient.*")[0]

        assert scope.category == SmartScopeCategory.USER
        assert scope.permissions == ["read", "write"]

    def test_v2_permissions(self):
        """Should expand v2 permission letters in order."""
        scope = parse_smart_scopes("patient/Observation.cruds")[0]

        assert scope.resource_type == "Observation"
        assert scope.permissions == ["create", "read", "update", "delete", "search"]

    def test_v2_query_suffix(self):
        """Should ignore a v2 query suffix, even one containing dots."""
        scope = parse_smart_scopes(
            "patient/Observation.rs?category=http://terminology.hl7.org/CodeSystem/observation-category|laboratory"
        )[0]

        assert scope.resource_type == "Observation"
        assert scope.permissions == ["read", "search"]

    def test_unknown_category_kept_raw(self):
        """Unparseable scopes should be kept without a category."""
        scope = parse_smart_scopes("practitioner/Patient.read")[0]

        assert scope.raw == "practitioner/Patient.read"
        assert scope.category is None
        assert scope.permissions == []

    def test_empty_string(self):
        assert parse_smart_scopes("") == []


class TestResourcesWithPermission:
    """Tests for resources_with_permission function."""

    def test_read_and_write(self):
        """Should list resource types per permission."""
        scope = "launch/patient patient/Observation.rs patient/Observation.c patient/Condition.read openid"

        assert resources_with_permission(scope, "read") == ["Condition", "Observation"]
        assert resources_with_permission(scope, "write") == ["Observation"]

    def test_wildcard_resource(self):
        """A wildcard resource type should be reported as '*'."""
        assert resources_with_permission("patient/*.read", "read") == ["*"]
        assert resources_with_permission("patient/*.read", "write") == []
