"""Tests for health/readiness endpoints and startup validation."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_health_ok(api_client: TestClient):
    response = api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "premium-billing"}


def test_health_503_while_draining(api_client: TestClient):
    api_client.app.state.shutting_down = True

    response = api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


def test_ready_checks_database_and_redis(api_client: TestClient):
    response = api_client.get("/api/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": True, "redis": True}}


class TestValidateSettings:
    def test_raises_on_missing_secret(self):
        from premium_billing.main import validate_settings

        mock_settings = MagicMock()
        mock_settings.debug = False
        mock_settings.paystack_secret_key = ""

        with patch("premium_billing.main.get_settings", return_value=mock_settings):
            with pytest.raises(RuntimeError, match="PAYSTACK_SECRET_KEY"):
                validate_settings()

    def test_skips_in_debug(self):
        from premium_billing.main import validate_settings

        mock_settings = MagicMock()
        mock_settings.debug = True
        mock_settings.paystack_secret_key = ""

        with patch("premium_billing.main.get_settings", return_value=mock_settings):
            validate_settings()

    def test_passes_with_secret(self):
        from premium_billing.main import validate_settings

        mock_settings = MagicMock()
        mock_settings.debug = False
        mock_settings.paystack_secret_key = "sk_live_x"

        with patch("premium_billing.main.get_settings", return_value=mock_settings):
            validate_settings()
