"""
Tests for schema module.
"""

import pytest

from azurestack_compute.schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_MAP,
    TYPE_SET,
    TYPE_STRING,
    UNKNOWN,
    Attribute,
    Timeouts,
    block,
    contains_unknown,
    force_new_changed,
    location_attribute,
    lookup_attribute,
    parse_duration,
    resolve,
    sensitive_paths,
    string_list,
    validate_config,
    values_differ,
    zero_value,
)

OS_DISK = {
    "caching": Attribute(TYPE_STRING, required=True),
    "name": Attribute(TYPE_STRING, optional=True, computed=True, force_new=True),
    "disk_size_gb": Attribute(TYPE_INT, optional=True, computed=True),
}

SCHEMA = {
    "name": Attribute(TYPE_STRING, required=True, force_new=True),
    "location": location_attribute(),
    "enabled": Attribute(TYPE_BOOL, optional=True, default=True),
    "secret": Attribute(TYPE_STRING, optional=True, sensitive=True),
    "fqdn": Attribute(TYPE_STRING, computed=True),
    "zones": string_list(optional=True, max_items=1),
    "os_disk": block(OS_DISK, required=True, max_items=1),
    "source_uri": Attribute(
        TYPE_STRING, optional=True, exactly_one_of=("source_uri", "source_id")
    ),
    "source_id": Attribute(
        TYPE_STRING, optional=True, exactly_one_of=("source_uri", "source_id")
    ),
    "tags": Attribute(TYPE_MAP, optional=True, conflicts_with=("secret",)),
}


def valid_config(**overrides):
    config = {
        "name": "vm1",
        "location": "local",
        "os_disk": [{"caching": "ReadWrite"}],
        "source_uri": "https://example/a.vhd",
    }
    config.update(overrides)
    return config


class TestDurations:
    """Test cases for duration parsing and Timeouts."""

    @pytest.mark.parametrize(
        "value,expected",
        [("30m", 1800), ("1h30m", 5400), ("90s", 90), ("2h", 7200), (45, 45)],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "90", "1d", "m", None, True])
    def test_parse_duration_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_default_timeouts(self):
        timeouts = Timeouts()
        assert timeouts.create == 30 * 60
        assert timeouts.read == 5 * 60

    def test_merged_overrides(self):
        timeouts = Timeouts().merged({"create": "45m", "delete": "1h"})
        assert timeouts.create == 45 * 60
        assert timeouts.delete == 60 * 60
        assert timeouts.update == 30 * 60

    def test_merged_does_not_modify_original(self):
        original = Timeouts()
        original.merged({"create": "1m"})
        assert original.create == 30 * 60

    def test_merged_rejects_unknown_operation(self):
        with pytest.raises(ValueError, match="unsupported timeout"):
            Timeouts().merged({"import": "5m"})


class TestValidateConfig:
    """Test cases for configuration validation."""

    def test_valid_config(self):
        assert validate_config(SCHEMA, valid_config()) == []

    def test_missing_required(self):
        config = valid_config()
        del config["name"]
        assert validate_config(SCHEMA, config) == ["name: the argument is required"]

    def test_unsupported_argument(self):
        diagnostics = validate_config(SCHEMA, valid_config(colour="blue"))
        assert diagnostics == ["colour: unsupported argument"]

    def test_computed_attribute_cannot_be_set(self):
        diagnostics = validate_config(SCHEMA, valid_config(fqdn="vm1.local"))
        assert diagnostics == ["fqdn: the attribute is computed and cannot be set"]

    def test_type_mismatch(self):
        diagnostics = validate_config(SCHEMA, valid_config(enabled="yes"))
        assert diagnostics == ["enabled: expected a boolean, got str"]

    def test_exactly_one_of(self):
        config = valid_config(source_id="/subscriptions/x")
        diagnostics = validate_config(SCHEMA, config)
        assert len(diagnostics) == 1
        assert "exactly one of `source_uri`, `source_id`" in diagnostics[0]

    def test_exactly_one_of_none_set(self):
        config = valid_config()
        del config["source_uri"]
        diagnostics = validate_config(SCHEMA, config)
        assert len(diagnostics) == 1

    def test_conflicts_with(self):
        diagnostics = validate_config(SCHEMA, valid_config(secret="x", tags={"a": "b"}))
        assert diagnostics == ["tags: conflicts with secret"]

    def test_max_items(self):
        diagnostics = validate_config(SCHEMA, valid_config(zones=["1", "2"]))
        assert diagnostics == ["zones: at most 1 item(s) allowed, got 2"]

    def test_nested_block_errors_carry_path(self):
        config = valid_config(os_disk=[{"disk_size_gb": 30}])
        assert validate_config(SCHEMA, config) == [
            "os_disk.0.caching: the argument is required"
        ]

    def test_unknown_values_are_not_type_checked(self):
        config = valid_config(enabled=UNKNOWN, name=UNKNOWN)
        assert validate_config(SCHEMA, config) == []

    def test_list_element_type(self):
        diagnostics = validate_config(SCHEMA, valid_config(zones=[1]))
        assert diagnostics == ["zones.0: expected a string, got int"]

    def test_validator_runs(self):
        schema = {
            "count": Attribute(
                TYPE_INT,
                required=True,
                validate=lambda v, k: [] if v < 10 else [f"{k} too big"],
            )
        }
        assert validate_config(schema, {"count": 11}) == ["count too big"]


class TestResolveAndDiff:
    """Test cases for value resolution and diffing."""

    def test_resolve_default(self):
        assert resolve(SCHEMA["enabled"], None, None) is True

    def test_resolve_computed_keeps_prior(self):
        assert resolve(SCHEMA["fqdn"], None, "vm1.local") == "vm1.local"

    def test_resolve_zero_value(self):
        assert resolve(SCHEMA["secret"], None, "old") == ""

    def test_resolve_block_fills_nested_defaults(self):
        resolved = resolve(SCHEMA["os_disk"], [{"caching": "None"}], [{"name": "osdisk", "disk_size_gb": 30}])
        assert resolved == [{"caching": "None", "name": "osdisk", "disk_size_gb": 30}]

    def test_zero_values(self):
        assert zero_value(Attribute(TYPE_STRING)) == ""
        assert zero_value(Attribute(TYPE_INT)) == 0
        assert zero_value(Attribute(TYPE_BOOL)) is False
        assert zero_value(Attribute(TYPE_MAP)) == {}
        assert zero_value(Attribute(TYPE_SET)) == []

    def test_location_diff_is_suppressed(self):
        assert not values_differ(SCHEMA["location"], "westeurope", "West Europe")

    def test_set_ignores_order(self):
        attr = Attribute(TYPE_SET, optional=True, elem=Attribute(TYPE_STRING))
        assert not values_differ(attr, ["a", "b"], ["b", "a"])
        assert values_differ(attr, ["a"], ["a", "b"])

    def test_unknown_always_differs(self):
        assert values_differ(SCHEMA["name"], "vm1", UNKNOWN)

    def test_force_new_top_level(self):
        assert force_new_changed(SCHEMA["name"], "vm1", "vm2")
        assert not force_new_changed(SCHEMA["enabled"], True, False)

    def test_force_new_nested(self):
        attr = SCHEMA["os_disk"]
        old = [{"caching": "None", "name": "a", "disk_size_gb": 30}]
        assert force_new_changed(attr, old, [{"caching": "None", "name": "b", "disk_size_gb": 30}])
        assert not force_new_changed(attr, old, [{"caching": "ReadOnly", "name": "a", "disk_size_gb": 30}])


class TestHelpers:
    """Test cases for schema helpers."""

    def test_contains_unknown(self):
        assert contains_unknown({"a": [1, {"b": UNKNOWN}]})
        assert not contains_unknown({"a": [1, {"b": 2}]})

    def test_lookup_attribute(self):
        assert lookup_attribute(SCHEMA, ["os_disk", "0", "caching"]) is OS_DISK["caching"]
        assert lookup_attribute(SCHEMA, ["os_disk", "0", "missing"]) is None
        assert lookup_attribute(SCHEMA, ["zones", "0"]).type == TYPE_STRING

    def test_sensitive_paths(self):
        assert sensitive_paths(SCHEMA) == ["secret"]

    def test_unknown_repr(self):
        assert repr(UNKNOWN) == "(known after apply)"
