"""
Webhook authenticator and plan updater unit tests.
"""

import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import AuthenticationError, BulkOperationFailure, ConfigurationError, ValidationError
from app.services.plan_updater import PlanUpdater
from app.services.webhook_auth import (
    MISSING_FIELDS_MESSAGE,
    compute_signature,
    parse_plan_change_payload,
    verify_webhook_signature,
)

BODY = b'{"portalId":"123","newPlanId":"pro"}'


class TestComputeSignature:

    def test_matches_hmac_sha256_hex(self):
        expected = hmac.new(b"testsecret", BODY, hashlib.sha256).hexdigest()
        assert compute_signature("testsecret", BODY) == expected


class TestVerifyWebhookSignature:

    def test_valid(self):
        verify_webhook_signature(BODY, compute_signature("s", BODY), "s")

    @pytest.mark.parametrize("secret", [None, ""])
    def test_missing_secret(self, secret):
        with pytest.raises(ConfigurationError) as exc_info:
            verify_webhook_signature(BODY, "anything", secret)
        assert exc_info.value.code == "WG-CFG-001"

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, signature):
        with pytest.raises(AuthenticationError):
            verify_webhook_signature(BODY, signature, "s")

    def test_mismatch(self):
        with pytest.raises(AuthenticationError) as exc_info:
            verify_webhook_signature(BODY, "deadbeef", "s")
        assert exc_info.value.code == "WG-SEC-001"

    def test_trailing_whitespace_is_a_mismatch(self):
        with pytest.raises(AuthenticationError):
            verify_webhook_signature(BODY, compute_signature("s", BODY) + " ", "s")

    def test_non_ascii_signature_is_a_mismatch(self):
        with pytest.raises(AuthenticationError):
            verify_webhook_signature(BODY, "é" * 64, "s")

    def test_expected_signature_is_never_logged(self):
        log = MagicMock()
        expected = compute_signature("s", BODY)

        with pytest.raises(AuthenticationError):
            verify_webhook_signature(BODY, "bad", "s", log=log)

        for call in log.method_calls:
            assert expected not in repr(call)


class TestParsePlanChangePayload:

    def test_complete_payload(self):
        payload = parse_plan_change_payload(b'{"eventType":"x","portalId":"1","newPlanId":"pro"}')
        assert payload.portal_id == "1"
        assert payload.new_plan_id == "pro"
        assert payload.event_type == "x"

    @pytest.mark.parametrize(
        "body",
        [b'{"portalId":"1"}', b'{"newPlanId":"pro"}', b"[]", b'{"portalId":null,"newPlanId":"pro"}'],
    )
    def test_missing_fields(self, body):
        with pytest.raises(ValidationError) as exc_info:
            parse_plan_change_payload(body)
        assert exc_info.value.detail == MISSING_FIELDS_MESSAGE

    def test_wrong_field_type(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_plan_change_payload(b'{"portalId":{"a":1},"newPlanId":"pro"}')
        assert exc_info.value.detail == MISSING_FIELDS_MESSAGE

    def test_invalid_json(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_plan_change_payload(b"{nope")
        assert exc_info.value.detail == "Invalid JSON payload"


class TestPlanUpdater:

    def test_store_error_becomes_bulk_operation_failure(self):
        users = MagicMock()
        users.update_plan_for_portal.side_effect = OperationalError("UPDATE users", {}, Exception("disk I/O error"))
        log = MagicMock()

        with pytest.raises(BulkOperationFailure) as exc_info:
            PlanUpdater(users=users, logger=log).update_plan_for_portal("123", "pro")

        assert "disk I/O error" in exc_info.value.detail
        assert exc_info.value.context == {"portal_id": "123", "new_plan_id": "pro"}
        assert log.error.call_args.args[0] == "plan_update_failed"

    def test_success_logs_row_count(self):
        users = MagicMock()
        users.update_plan_for_portal.return_value = 3
        log = MagicMock()

        PlanUpdater(users=users, logger=log).update_plan_for_portal("123", "pro")

        users.update_plan_for_portal.assert_called_once_with("123", "pro")
        assert log.info.call_args.kwargs["users_updated"] == 3
