"""
Error registry and structured error response tests.
"""

import pytest
import yaml

from app.core.errors import (
    AuthenticationError,
    BulkOperationFailure,
    ConfigurationError,
    ValidationError,
    WorkflowGuardError,
)
from app.core.errors.registry import ErrorRegistry, RegistryValidationError, error_registry


class TestWorkflowGuardError:

    def test_subclass_default_codes(self):
        assert ConfigurationError().code == "WG-CFG-001"
        assert AuthenticationError().code == "WG-SEC-001"
        assert ValidationError().code == "WG-API-001"
        assert BulkOperationFailure().code == "WG-DB-001"

    def test_rejects_malformed_code(self):
        with pytest.raises(ValueError):
            WorkflowGuardError("BAD-CODE")

    def test_requires_a_code(self):
        with pytest.raises(ValueError):
            WorkflowGuardError()

    def test_str_includes_detail(self):
        exc = WorkflowGuardError("WG-BIL-001", detail="user u1 has no HubSpot portal ID")
        assert str(exc) == "WG-BIL-001: user u1 has no HubSpot portal ID"


class TestShippedRegistry:

    def test_every_error_class_is_registered(self):
        for code in ("WG-API-001", "WG-BIL-001", "WG-BIL-002", "WG-CFG-001",
                     "WG-DB-001", "WG-GW-001", "WG-SEC-001", "WG-SEC-002"):
            assert error_registry.get(code) is not None, code

    def test_status_codes(self):
        assert error_registry.lookup("WG-BIL-001").http_status == 400
        assert error_registry.lookup("WG-BIL-002").http_status == 404
        assert error_registry.lookup("WG-CFG-001").http_status == 500
        assert error_registry.lookup("WG-GW-001").http_status == 502
        assert error_registry.lookup("WG-SEC-001").http_status == 401

    def test_unknown_lookup_raises(self):
        with pytest.raises(KeyError):
            error_registry.lookup("WG-SYS-999")


class TestRegistryValidation:

    def _write(self, tmp_path, errors):
        path = tmp_path / "registry.yaml"
        path.write_text(yaml.safe_dump({"schema_version": 1, "errors": errors}))
        return str(path)

    def _entry(self, **overrides):
        entry = {
            "code": "WG-SYS-001",
            "domain": "SYS",
            "title": "t",
            "severity": "ERROR",
            "retryable": False,
            "http_status": 500,
            "safe_message": "m",
            "remediation": [],
        }
        entry.update(overrides)
        return entry

    def test_valid_file(self, tmp_path):
        registry = ErrorRegistry()
        registry.load(self._write(tmp_path, [self._entry()]))
        assert len(registry) == 1
        assert registry.schema_version == 1

    def test_domain_must_match_prefix(self, tmp_path):
        with pytest.raises(RegistryValidationError):
            ErrorRegistry().load(self._write(tmp_path, [self._entry(domain="DB")]))

    def test_duplicate_codes(self, tmp_path):
        with pytest.raises(RegistryValidationError):
            ErrorRegistry().load(self._write(tmp_path, [self._entry(), self._entry()]))

    def test_missing_fields(self, tmp_path):
        entry = self._entry()
        del entry["safe_message"]
        with pytest.raises(RegistryValidationError):
            ErrorRegistry().load(self._write(tmp_path, [entry]))

    def test_unknown_severity(self, tmp_path):
        with pytest.raises(RegistryValidationError):
            ErrorRegistry().load(self._write(tmp_path, [self._entry(severity="LOUD")]))

    def test_http_status_must_be_an_error(self, tmp_path):
        with pytest.raises(RegistryValidationError):
            ErrorRegistry().load(self._write(tmp_path, [self._entry(http_status=200)]))

    def test_failed_reload_keeps_previous_entries(self, tmp_path):
        registry = ErrorRegistry()
        registry.load(self._write(tmp_path, [self._entry()]))

        with pytest.raises(RegistryValidationError):
            registry.load(self._write(tmp_path, [self._entry(severity="LOUD")]))

        assert "WG-SYS-001" in registry
