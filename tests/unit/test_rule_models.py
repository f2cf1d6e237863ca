"""
Tests for Rule Set and Request Models
"""

import json

import pytest
from pydantic import ValidationError

from mcpfirewall.policy.engine import PolicyEngine, load_rule_set
from mcpfirewall.policy.models import PolicyRuleSet, RuleSetMode, ToolCallRequest


class TestPolicyRuleSet:
    """Test suite for rule set shape detection."""

    def test_taxonomy_shape(self):
        """Test that deny_insight/deny_modification select taxonomy mode."""
        rules = PolicyRuleSet.model_validate({
            "deny_insight": ["secret.*"],
            "deny_modification": ["*.lock"],
        })
        assert rules.mode == RuleSetMode.TAXONOMY
        assert rules.confidentiality == ("secret.*",)
        assert rules.integrity == ("*.lock",)

    def test_legacy_shape(self):
        """Test that deny_read_and_write/deny_write select legacy mode."""
        rules = PolicyRuleSet.model_validate({
            "deny_read_and_write": ["*.key"],
            "deny_write": ["*.db"],
        })
        assert rules.mode == RuleSetMode.LEGACY
        assert rules.confidentiality == ("*.key",)
        assert rules.integrity == ("*.db",)

    def test_missing_category_defaults_to_empty(self):
        """Test that one key of a shape is enough."""
        rules = PolicyRuleSet.model_validate({"deny_modification": ["locked.db"]})
        assert rules.mode == RuleSetMode.TAXONOMY
        assert rules.confidentiality == ()

    def test_null_category_is_empty(self):
        """Test that a YAML key with no value counts as an empty list."""
        rules = PolicyRuleSet.model_validate({"deny_insight": None})
        assert rules.confidentiality == ()

    def test_mixed_shapes_rejected(self):
        """Test that both shapes in one file are an error."""
        with pytest.raises(ValidationError):
            PolicyRuleSet.model_validate({
                "deny_insight": ["a"],
                "deny_write": ["b"],
            })

    def test_no_recognised_keys_rejected(self):
        """Test that a file without rule keys is an error."""
        with pytest.raises(ValidationError):
            PolicyRuleSet.model_validate({"deny_everything": ["*"]})

    def test_non_list_value_rejected(self):
        """Test that a bare string is not accepted as a pattern list."""
        with pytest.raises(ValidationError):
            PolicyRuleSet.model_validate({"deny_insight": "secret.*"})

    def test_rule_set_is_immutable(self):
        """Test that a loaded rule set cannot be changed."""
        rules = PolicyRuleSet.model_validate({"deny_insight": ["a"]})
        with pytest.raises(ValidationError):
            rules.confidentiality = ("b",)

    def test_round_trip_through_dump(self):
        """Test that a dumped rule set validates back to itself."""
        rules = PolicyRuleSet.model_validate({"deny_read_and_write": ["*.key"]})
        assert PolicyRuleSet.model_validate(rules.model_dump()) == rules


class TestLoadRuleSet:
    """Test suite for reading rule files."""

    def test_load_json(self, tmp_path):
        """Test loading a JSON rule file."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"deny_insight": ["secret.*"]}))

        engine = PolicyEngine.from_file(path)
        assert engine.rules.confidentiality == ("secret.*",)

    def test_load_yaml(self, tmp_path):
        """Test loading a YAML rule file."""
        path = tmp_path / "rules.yaml"
        path.write_text(
            "name: strict\n"
            "deny_read_and_write:\n"
            "  - '*.key'\n"
            "deny_write:\n"
            "  - '*.db'\n"
        )

        rules = load_rule_set(path)
        assert rules.name == "strict"
        assert rules.mode == RuleSetMode.LEGACY
        assert rules.integrity == ("*.db",)

    def test_missing_file(self, tmp_path):
        """Test that a missing rule file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_rule_set(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        """Test that broken JSON raises ValueError."""
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            load_rule_set(path)


class TestToolCallRequest:
    """Test suite for request extraction."""

    def test_from_message(self):
        """Test extracting tool name, arguments and id."""
        request = ToolCallRequest.from_message({
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "read_text_file", "arguments": {"path": "a.txt"}},
        })
        assert request.method == "tools/call"
        assert request.id == 7
        assert request.has_id is True
        assert request.name == "read_text_file"
        assert request.arguments == {"path": "a.txt"}

    def test_tolerates_odd_params(self):
        """Test that non-object params or arguments are treated as absent."""
        request = ToolCallRequest.from_message({
            "method": "tools/call",
            "params": ["read_text_file"],
        })
        assert request.name is None
        assert request.arguments is None
        assert request.has_id is False

        request = ToolCallRequest.from_message({
            "method": "tools/call",
            "params": {"name": 5, "arguments": "path=a"},
        })
        assert request.name is None
        assert request.arguments is None

    def test_string_id_kept(self):
        """Test that string ids are kept as-is."""
        request = ToolCallRequest.from_message({"method": "x", "id": "req-1"})
        assert request.id == "req-1"
