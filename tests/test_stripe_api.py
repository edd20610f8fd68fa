"""API tests for the billing sync, report and export endpoints."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from orgpulse.core.errors import ProviderNotConfiguredError
from orgpulse.main import app
from orgpulse.models.stripe_sync_metadata import SYNC_METADATA_ID, StripeSyncMetadata
from orgpulse.routers.stripe import get_billing_provider
from orgpulse.schemas.billing import BillingSnapshot, PaymentRecord, SubscriptionRecord
from orgpulse.services.billing_metrics import derive_cancellations
from orgpulse.services.stripe_sync import MISSING_KEY_MESSAGE


def build_snapshot() -> BillingSnapshot:
    now = datetime.now(UTC)
    subscriptions = [
        SubscriptionRecord(
            id="sub_1",
            customer_id="cus_1",
            customer_name="Ada",
            customer_email="ada@example.com",
            status="active",
            plan_amount=50,
            discounted_amount=50,
            start_date=now - timedelta(days=200),
        ),
        SubscriptionRecord(
            id="sub_2",
            customer_id="cus_2",
            status="canceled",
            plan_amount=30,
            discounted_amount=30,
            start_date=now - timedelta(days=100),
            canceled_at=now - timedelta(days=40),
        ),
    ]
    payments = [
        PaymentRecord(id="ch_1", customer_id="cus_1", amount=50, status="succeeded", created=now - timedelta(days=5)),
        PaymentRecord(id="ch_2", customer_id="cus_2", amount=30, status="failed", created=now - timedelta(days=50)),
    ]
    return BillingSnapshot(
        subscriptions=subscriptions,
        payments=payments,
        cancellations=derive_cancellations(subscriptions, payments),
        customers_count=2,
        invoices_count=3,
        synced_at=now,
    )


@pytest.fixture
def client():
    """Create test client."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def provider():
    provider = MagicMock()
    provider.fetch_snapshot = AsyncMock(return_value=build_snapshot())
    app.dependency_overrides[get_billing_provider] = lambda: provider
    return provider


class TestSync:
    def test_requires_auth(self, client: TestClient, provider):
        response = client.post("/api/stripe/sync")
        assert response.status_code == 401
        provider.fetch_snapshot.assert_not_called()

    def test_sync_returns_reports(self, client: TestClient, auth_headers, provider):
        response = client.post("/api/stripe/sync", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["persisted"] is True
        assert data["syncResult"]["subscriptions"] == 2
        assert data["syncResult"]["cancellations"] == 1
        assert data["syncResult"]["invoices"] == 3
        assert data["metrics"]["mrr"] == 50
        assert data["metrics"]["activeSubscriptions"] == 1
        assert len(data["cancellationAnalysis"]["cancellationsByMonth"]) == 12
        assert "retentionCurve" in data["retentionAnalysis"]
        assert data["lastSyncedAt"]

    def test_missing_api_key(self, client: TestClient, auth_headers, provider):
        provider.fetch_snapshot.side_effect = ProviderNotConfiguredError(MISSING_KEY_MESSAGE)
        response = client.post("/api/stripe/sync", headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": MISSING_KEY_MESSAGE}

    def test_provider_failure_is_recorded(self, client: TestClient, db_session, auth_headers, provider):
        provider.fetch_snapshot.side_effect = RuntimeError("Stripe unavailable")
        response = client.post("/api/stripe/sync", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Stripe unavailable"}
        metadata = db_session.get(StripeSyncMetadata, SYNC_METADATA_ID)
        assert metadata.sync_status == "failed"
        assert metadata.sync_error == "Stripe unavailable"

    def test_background_sync_is_queued(self, client: TestClient, auth_headers, provider):
        job = MagicMock()
        job.job_id = "job-42"

        with patch("orgpulse.routers.stripe.enqueue_billing_sync", new_callable=AsyncMock) as mock_enqueue:
            mock_enqueue.return_value = job
            response = client.post("/api/stripe/sync", params={"background": "true"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "queued": True, "jobId": "job-42"}
        mock_enqueue.assert_awaited_once()
        provider.fetch_snapshot.assert_not_called()

    def test_background_sync_requires_auth(self, client: TestClient, provider):
        with patch("orgpulse.routers.stripe.enqueue_billing_sync", new_callable=AsyncMock) as mock_enqueue:
            response = client.post("/api/stripe/sync", params={"background": "true"})

        assert response.status_code == 401
        mock_enqueue.assert_not_called()


class TestFetch:
    def test_no_data(self, client: TestClient, auth_headers, provider):
        response = client.get("/api/stripe/sync", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["hasData"] is False
        assert "Refresh Revenue Data" in data["message"]

    def test_reports_from_stored_snapshot(self, client: TestClient, auth_headers, provider):
        client.post("/api/stripe/sync", headers=auth_headers)
        response = client.get("/api/stripe/sync", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["hasData"] is True
        assert data["metrics"]["mrr"] == 50
        assert [s["id"] for s in data["activeSubscriptions"]] == ["sub_1"]
        assert [s["id"] for s in data["canceledSubscriptions"]] == ["sub_2"]
        assert [p["id"] for p in data["failedPayments"]] == ["ch_2"]
        assert data["betaTesters"] == []
        assert data["couponUsage"] == []
        assert data["lastSyncedAt"]
        provider.fetch_snapshot.assert_awaited_once()

    def test_customer_payments(self, client: TestClient, auth_headers, provider):
        client.post("/api/stripe/sync", headers=auth_headers)
        response = client.get("/api/stripe/customers/cus_1/payments", headers=auth_headers)
        assert response.status_code == 200
        payments = response.json()["payments"]
        assert [p["id"] for p in payments] == ["ch_1"]
        assert payments[0]["customerId"] == "cus_1"


class TestExport:
    def test_subscriptions_csv(self, client: TestClient, auth_headers, provider):
        client.post("/api/stripe/sync", headers=auth_headers)
        response = client.get("/api/stripe/export/subscriptions", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="subscriptions.csv"'
        lines = response.text.splitlines()
        assert lines[0].startswith("Customer Name,Email,Status")
        assert len(lines) == 3

    def test_empty_export(self, client: TestClient, auth_headers, provider):
        response = client.get("/api/stripe/export/cancellations", headers=auth_headers)
        assert response.status_code == 200
        assert response.text.splitlines() == [
            "Customer Name,Email,Canceled Date,Subscription Type,Monthly Value,Days as Customer,Total Paid,Reason"
        ]

    def test_unknown_export(self, client: TestClient, auth_headers, provider):
        response = client.get("/api/stripe/export/invoices", headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid export type"}
