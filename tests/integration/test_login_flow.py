"""
Integration tests for the session bootstrap flow.

The three services run in-process; the portal's HTTP clients are routed to
the identity and entitlements apps over ASGI.
"""

from unittest.mock import patch

import httpx
import pytest

from service_entitlements.app.access.models import EntitlementState
from service_entitlements.app.main import create_app as create_entitlements_app
from service_identity.app.main import create_app as create_identity_app
from service_identity.app.profiles.models import Role
from service_portal.app.adapters.entitlements_client import EntitlementsClient
from service_portal.app.adapters.identity_client import IdentityClient
from service_portal.app.main import create_app as create_portal_app
from shared.circuit_breaker import circuit_breakers
from shared.config import get_config
from shared.retry import RetryPolicy
from shared.test_helpers import TestDataFactory, TestEnvironment, make_partitions


RealAsyncClient = httpx.AsyncClient
FAST_RETRY = RetryPolicy(max_attempts=2, base_delay=0.01, jitter=False)


class StaticFlagStore:
    """Flag store serving fixed per-user flag hashes."""

    def __init__(self, flags_by_user):
        self.flags_by_user = flags_by_user

    async def load_state(self, user_id):
        return EntitlementState.from_flags(self.flags_by_user.get(user_id, {}))

    async def health_check(self):
        return True

    async def start(self):
        pass

    async def stop(self):
        pass


class RoutingTransport(httpx.AsyncBaseTransport):
    """Dispatch requests to in-process apps by host name."""

    def __init__(self, apps):
        self.transports = {host: httpx.ASGITransport(app=app) for host, app in apps.items()}

    async def handle_async_request(self, request):
        return await self.transports[request.url.host].handle_async_request(request)


class TestLoginFlow:
    """Integration tests for portal login across services."""

    @pytest.fixture(autouse=True)
    def reset_circuit_breakers(self):
        circuit_breakers.reset()
        yield
        circuit_breakers.reset()

    @pytest.fixture
    def partitions(self):
        return {
            Role(key): partition
            for key, partition in make_partitions(
                teachers=[TestDataFactory.teacher_document("t1")]
            ).items()
        }

    @pytest.fixture
    def flag_store(self):
        return StaticFlagStore({
            "t1": TestDataFactory.flags(approved=False, trial=False, sections={"payouts": ["summary"]}),
        })

    @pytest.fixture
    def apps(self, partitions, flag_store):
        mock_config = TestEnvironment.get_mock_config()
        return {
            "identity.test": create_identity_app(
                config=get_config("identity", 8013, **mock_config),
                partitions=partitions
            ),
            "entitlements.test": create_entitlements_app(
                config=get_config("entitlements", 8011, **mock_config),
                flag_store=flag_store
            ),
        }

    @pytest.fixture
    def portal(self):
        return create_portal_app(
            config=get_config("portal", 8000, **TestEnvironment.get_mock_config()),
            identity_client=IdentityClient("http://identity.test", retry_policy=FAST_RETRY),
            entitlements_client=EntitlementsClient("http://entitlements.test", retry_policy=FAST_RETRY)
        )

    async def _login(self, portal, apps, payload):
        transport = RoutingTransport(apps)

        def routed_client(*args, **kwargs):
            return RealAsyncClient(transport=transport, timeout=kwargs.get("timeout"))

        with patch("httpx.AsyncClient", side_effect=routed_client):
            async with RealAsyncClient(transport=httpx.ASGITransport(app=portal), base_url="http://portal.test") as client:
                return await client.post("/session/login", json=payload)

    @pytest.mark.asyncio
    async def test_teacher_login_gets_allow_listed_sections(self, portal, apps, partitions):
        response = await self._login(portal, apps, {"principal": TestDataFactory.principal(uid="t1")})

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "teacher"
        assert data["created"] is False
        assert data["features"]["payouts"] == ["summary"]
        assert data["features"]["assessments"] == []
        assert "lastActivity" in partitions[Role.TEACHER].documents["t1"]

    @pytest.mark.asyncio
    async def test_first_login_creates_student(self, portal, apps, partitions):
        payload = {"principal": TestDataFactory.principal(uid="u1", email="student@example.com")}

        first = await self._login(portal, apps, payload)
        second = await self._login(portal, apps, payload)

        assert first.json()["role"] == "student"
        assert first.json()["created"] is True
        assert second.json()["created"] is False
        assert list(partitions[Role.STUDENT].documents) == ["u1"]

    @pytest.mark.asyncio
    async def test_bootstrap_admin(self, portal, apps, partitions):
        payload = {"principal": TestDataFactory.principal(uid="u2", email="admin@campus.test")}

        response = await self._login(portal, apps, payload)

        assert response.json()["role"] == "admin"
        assert "u2" in partitions[Role.ADMIN].documents

    @pytest.mark.asyncio
    async def test_inline_flags_override_store(self, portal, apps):
        payload = {
            "principal": TestDataFactory.principal(uid="t1"),
            "flags": TestDataFactory.flags(trial=True),
        }

        response = await self._login(portal, apps, payload)

        assert response.json()["features"]["assessments"] == ["overview", "create", "grading"]

    @pytest.mark.asyncio
    async def test_identity_outage_blocks_login(self, portal, apps, partitions):
        for partition in partitions.values():
            partition.fail("get")

        response = await self._login(portal, apps, {"principal": TestDataFactory.principal(uid="t1")})

        assert response.status_code == 503
        assert response.json()["code"] == "RECONCILIATION_FAILED"
        assert response.json()["retry"] is True

    @pytest.mark.asyncio
    async def test_entitlements_outage_fails_closed(self, portal, apps):
        apps["entitlements.test"] = _unreachable_app

        response = await self._login(portal, apps, {"principal": TestDataFactory.principal(uid="t1")})

        assert response.status_code == 200
        assert response.json()["role"] == "teacher"
        assert response.json()["features"] == {}


async def _unreachable_app(scope, receive, send):
    raise httpx.ConnectError("connection refused")
