"""
Unit tests for Portal main service.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from service_portal.app.main import create_app
from service_portal.app.adapters.entitlements_client import EntitlementsClient
from service_portal.app.adapters.identity_client import IdentityClient
from shared.errors import ExternalServiceError
from shared.test_helpers import TestDataFactory


class TestPortalService:
    """Test cases for PortalService."""

    @pytest.fixture
    def identity_client(self):
        client = AsyncMock(spec=IdentityClient)
        client.reconcile.return_value = {
            "role": "student",
            "created": True,
            "profile": TestDataFactory.student_document("u1"),
        }
        return client

    @pytest.fixture
    def entitlements_client(self):
        client = AsyncMock(spec=EntitlementsClient)
        client.entitlement_map.return_value = {"payouts": ["summary"], "assessments": []}
        return client

    @pytest.fixture
    def client(self, identity_client, entitlements_client):
        """Create test client."""
        app = create_app(identity_client=identity_client, entitlements_client=entitlements_client)
        return TestClient(app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "portal"

    def test_login(self, client, identity_client, entitlements_client):
        flags = TestDataFactory.flags(sections={"payouts": ["summary"]})
        response = client.post("/session/login", json={
            "principal": TestDataFactory.principal(uid="u1", photo_url="https://img/u1.png"),
            "flags": flags,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "student"
        assert data["created"] is True
        assert data["profile"]["id"] == "u1"
        assert data["features"] == {"payouts": ["summary"], "assessments": []}

        forwarded = identity_client.reconcile.await_args.args[0]
        assert forwarded["uid"] == "u1"
        assert forwarded["displayName"] == "Student One"
        assert forwarded["photoURL"] == "https://img/u1.png"
        entitlements_client.entitlement_map.assert_awaited_once_with("u1", flags)

    def test_login_without_flags(self, client, entitlements_client):
        client.post("/session/login", json={"principal": TestDataFactory.principal(uid="u1")})
        entitlements_client.entitlement_map.assert_awaited_once_with("u1", None)

    def test_identity_failure_blocks_login(self, client, identity_client, entitlements_client):
        identity_client.reconcile.side_effect = ExternalServiceError("identity", "service unavailable")

        response = client.post("/session/login", json={"principal": TestDataFactory.principal()})

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "RECONCILIATION_FAILED"
        assert data["retry"] is True
        entitlements_client.entitlement_map.assert_not_awaited()

    def test_entitlements_failure_fails_closed(self, client, entitlements_client):
        entitlements_client.entitlement_map.side_effect = ExternalServiceError("entitlements", "circuit open")

        response = client.post("/session/login", json={"principal": TestDataFactory.principal()})

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "student"
        assert data["features"] == {}

    def test_login_requires_uid(self, client):
        response = client.post("/session/login", json={"principal": {"email": "x@example.com"}})
        assert response.status_code == 422

    def test_health_reports_circuits(self, client):
        response = client.get("/health")
        dependencies = response.json()["dependencies"]
        assert set(dependencies) == {"identity_service", "entitlements_service"}
