"""
HubSpot Billing Webhook Tests
==============================

End-to-end tests for POST /billing/webhook through the FastAPI app:
check ordering (secret -> signature -> payload -> update), the flat
{"message": ...} bodies, and that nothing is mutated unless every check
passes.
"""

import json

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.core.errors import BulkOperationFailure
from app.main import app
from app.routers.webhooks import get_plan_updater
from app.services.webhook_auth import compute_signature
from conftest import make_user, plan_of

client = TestClient(app)

SECRET = "testsecret"
BODY = b'{"portalId":"123","newPlanId":"pro"}'


@pytest.fixture
def secret(monkeypatch):
    monkeypatch.setattr(settings, "hubspot_client_secret", SECRET)
    return SECRET


@pytest.fixture
def portal_users():
    make_user("a", portal_id="123", plan_id="starter")
    make_user("b", portal_id="123", plan_id="starter")
    make_user("c", portal_id="999", plan_id="starter")


def _post(body: bytes, signature=None, header="x-signature"):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers[header] = signature
    return client.post("/billing/webhook", content=body, headers=headers)


class TestWebhookHappyPath:

    def test_valid_signature_updates_all_portal_users(self, secret, portal_users):
        response = _post(BODY, compute_signature(SECRET, BODY))

        assert response.status_code == 200
        assert response.json() == {"message": "Plan updated successfully"}
        assert plan_of("a") == "pro"
        assert plan_of("b") == "pro"
        assert plan_of("c") == "starter"

    def test_legacy_signature_header_is_accepted(self, secret, portal_users):
        response = _post(BODY, compute_signature(SECRET, BODY), header="x-hubspot-signature")

        assert response.status_code == 200
        assert plan_of("a") == "pro"

    def test_extra_fields_are_ignored(self, secret, portal_users):
        body = json.dumps(
            {"eventType": "plan_changed", "portalId": "123", "newPlanId": "enterprise", "foo": [1, 2]}
        ).encode()

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 200
        assert plan_of("a") == "enterprise"

    def test_numeric_portal_id(self, secret, portal_users):
        body = b'{"portalId":123,"newPlanId":"pro"}'

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 200
        assert plan_of("a") == "pro"

    def test_no_matching_users_is_still_ok(self, secret):
        response = _post(BODY, compute_signature(SECRET, BODY))

        assert response.status_code == 200
        assert response.json() == {"message": "Plan updated successfully"}


class TestWebhookSignature:

    def test_invalid_signature(self, secret, portal_users):
        response = _post(BODY, "invalid")

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid HubSpot webhook signature"}
        assert plan_of("a") == "starter"

    def test_missing_signature(self, secret, portal_users):
        response = _post(BODY)

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid HubSpot webhook signature"}
        assert plan_of("a") == "starter"

    def test_body_mutated_after_signing(self, secret, portal_users):
        signature = compute_signature(SECRET, BODY)
        tampered = BODY.replace(b'"pro"', b'"prO"')

        response = _post(tampered, signature)

        assert response.status_code == 401
        assert plan_of("a") == "starter"

    def test_reformatted_body_is_rejected(self, secret, portal_users):
        """Signature covers the exact bytes; whitespace changes break it."""
        signature = compute_signature(SECRET, BODY)
        reformatted = b'{"portalId": "123", "newPlanId": "pro"}'

        response = _post(reformatted, signature)

        assert response.status_code == 401

    def test_signature_mutated_by_one_char(self, secret, portal_users):
        signature = compute_signature(SECRET, BODY)
        flipped = signature[:-1] + ("0" if signature[-1] != "0" else "1")

        response = _post(BODY, flipped)

        assert response.status_code == 401
        assert plan_of("a") == "starter"

    def test_uppercase_hex_signature_is_rejected(self, secret, portal_users):
        response = _post(BODY, compute_signature(SECRET, BODY).upper())

        assert response.status_code == 401

    def test_wrong_secret(self, secret, portal_users):
        response = _post(BODY, compute_signature("othersecret", BODY))

        assert response.status_code == 401


class TestWebhookConfiguration:

    def test_missing_secret_fails_closed(self, monkeypatch, portal_users):
        monkeypatch.setattr(settings, "hubspot_client_secret", None)

        response = _post(BODY, compute_signature(SECRET, BODY))

        assert response.status_code == 500
        assert response.json() == {"message": "HUBSPOT_CLIENT_SECRET not set in environment"}
        assert plan_of("a") == "starter"

    def test_missing_secret_wins_over_missing_signature(self, monkeypatch):
        monkeypatch.setattr(settings, "hubspot_client_secret", "")

        response = _post(BODY)

        assert response.status_code == 500


class TestWebhookPayload:

    def test_missing_new_plan_id(self, secret, portal_users):
        body = b'{"portalId":"123"}'

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 400
        assert response.json() == {"message": "Missing portalId or newPlanId in webhook payload"}
        assert plan_of("a") == "starter"

    def test_missing_portal_id(self, secret):
        body = b'{"newPlanId":"pro"}'

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 400
        assert response.json() == {"message": "Missing portalId or newPlanId in webhook payload"}

    def test_empty_values_count_as_missing(self, secret):
        body = b'{"portalId":"","newPlanId":"pro"}'

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 400

    def test_invalid_json_with_valid_signature(self, secret):
        body = b"not json"

        response = _post(body, compute_signature(SECRET, body))

        assert response.status_code == 400
        assert response.json() == {"message": "Invalid JSON payload"}

    def test_invalid_json_with_bad_signature_is_401(self, secret):
        response = _post(b"not json", "invalid")

        assert response.status_code == 401


class TestWebhookUpdateFailure:

    def test_store_failure_is_500_with_message(self, secret):
        class FailingUpdater:
            def update_plan_for_portal(self, portal_id, new_plan_id):
                raise BulkOperationFailure(detail="database is locked")

        app.dependency_overrides[get_plan_updater] = lambda: FailingUpdater()
        try:
            response = _post(BODY, compute_signature(SECRET, BODY))
        finally:
            app.dependency_overrides.pop(get_plan_updater, None)

        assert response.status_code == 500
        assert response.json() == {"message": "Failed to process webhook", "error": "database is locked"}

    def test_unexpected_failure_is_500(self, secret):
        class BrokenUpdater:
            def update_plan_for_portal(self, portal_id, new_plan_id):
                raise RuntimeError("unexpected")

        app.dependency_overrides[get_plan_updater] = lambda: BrokenUpdater()
        try:
            response = _post(BODY, compute_signature(SECRET, BODY))
        finally:
            app.dependency_overrides.pop(get_plan_updater, None)

        assert response.status_code == 500
        assert response.json() == {"message": "Failed to process webhook", "error": "unexpected"}
