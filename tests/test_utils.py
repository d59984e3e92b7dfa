"""
Tests for the utils helpers and the named locks.
"""

import threading
from unittest.mock import Mock

import pytest
from azure.mgmt.compute.models import SubResource

from azurestack_compute import locks
from azurestack_compute.exceptions import (
    AzureApiError,
    OperationTimeoutError,
    SchemaValidationError,
)
from azurestack_compute.utils import azure, diff_suppress, location, settings, tags

from .conftest import api_error, not_found


class TestAzureHelpers:
    """Test cases for SDK error classification and pollers."""

    def test_is_not_found(self):
        assert azure.is_not_found(not_found())
        assert azure.is_not_found(api_error("gone", status_code=404))
        assert not azure.is_not_found(api_error())
        assert not azure.is_not_found(ValueError("x"))

    def test_get_or_none_returns_value(self):
        getter = Mock(return_value="vm")
        assert azure.get_or_none("retrieving", "id", getter, "rg", "vm1") == "vm"
        getter.assert_called_once_with("rg", "vm1")

    def test_get_or_none_on_404(self):
        getter = Mock(side_effect=not_found())
        assert azure.get_or_none("retrieving", "id", getter) is None

    def test_get_or_none_wraps_other_errors(self):
        getter = Mock(side_effect=api_error("boom"))
        with pytest.raises(AzureApiError):
            azure.get_or_none("retrieving", "id", getter)

    def test_wait_for_completion(self, poller):
        assert azure.wait_for_completion(poller("done"), 60, "creation") == "done"

    def test_wait_for_completion_times_out(self, poller):
        pending = poller(None)
        pending.done.return_value = False
        with pytest.raises(OperationTimeoutError):
            azure.wait_for_completion(pending, 1, "creation")

    def test_wait_for_completion_wraps_failures(self, poller):
        failing = poller()
        failing.result.side_effect = api_error("conflict", status_code=409)
        with pytest.raises(AzureApiError):
            azure.wait_for_completion(failing, 60, "deletion")

    def test_sub_resources(self):
        expanded = azure.expand_ids_to_sub_resources(["/a", "/b"])
        assert [r.id for r in expanded] == ["/a", "/b"]
        assert azure.expand_ids_to_sub_resources(None) == []
        assert azure.flatten_sub_resources_to_ids([SubResource(id="/a"), SubResource()]) == ["/a"]
        assert azure.flatten_sub_resources_to_ids(None) == []


class TestSettings:
    """Test cases for JSON settings expansion."""

    def test_expand(self):
        assert settings.expand('{"a": 1}') == {"a": 1}
        assert settings.expand("") is None

    def test_expand_rejects_invalid_json(self):
        with pytest.raises(SchemaValidationError, match="unable to parse"):
            settings.expand("{oops", "protected_settings")

    def test_expand_rejects_non_object(self):
        with pytest.raises(SchemaValidationError, match="JSON object"):
            settings.expand("[1, 2]")

    def test_flatten(self):
        assert settings.flatten(None) == ""
        assert settings.flatten({"a": 1}) == '{"a": 1}'


class TestDiffSuppress:
    def test_json_equivalent(self):
        assert diff_suppress.json_equivalent('{"a": 1, "b": 2}', '{"b":2,"a":1}')
        assert not diff_suppress.json_equivalent('{"a": 1}', "")
        assert not diff_suppress.json_equivalent('{"a": 1}', "{oops")

    def test_admin_password_placeholder(self):
        assert diff_suppress.admin_password("ignored-as-imported", "P@ssw0rd1234!")
        assert not diff_suppress.admin_password("old", "new")


class TestTagsAndLocation:
    def test_expand_tags(self):
        assert tags.expand({"env": "dev", "count": 3, "on": True}) == {
            "env": "dev",
            "count": "3",
            "on": "true",
        }
        assert tags.expand(None) == {}

    def test_validate_tags(self):
        assert tags.validate_tags({"env": "dev"}, "tags") == []
        assert tags.validate_tags("env", "tags") == ["expected tags to be a map"]
        too_many = {f"k{i}": "v" for i in range(51)}
        assert any("maximum of 50" in e for e in tags.validate_tags(too_many, "tags"))
        assert tags.validate_tags({"k" * 513: "v"}, "tags") != []

    def test_location(self):
        assert location.normalize("West Europe") == "westeurope"
        assert location.normalize(None) == ""
        assert location.location_diff_suppress("westeurope", "West Europe")
        assert not location.location_diff_suppress("local", "westeurope")


class TestLocks:
    """Test cases for the named locks."""

    def test_same_name_shares_a_lock(self):
        assert locks._lock_for("vm.a") is locks._lock_for("vm.a")
        assert locks._lock_for("vm.a") is not locks._lock_for("vm.b")

    def test_by_name_is_exclusive(self):
        entered = threading.Event()
        with locks.by_name("vm1", "azurestack_virtual_machine"):
            worker = threading.Thread(
                target=lambda: _acquire(entered, "vm1", "azurestack_virtual_machine")
            )
            worker.start()
            assert not entered.wait(0.2)
        worker.join(timeout=5)
        assert entered.is_set()


def _acquire(event, name, resource_type):
    with locks.by_name(name, resource_type):
        event.set()
