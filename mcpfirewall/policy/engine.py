"""
Policy Engine

Decides whether a filesystem tool call may reach the backend.
Confidentiality rules gate every operation that can see or touch a
file; integrity rules gate only operations that change one.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from structlog import get_logger

from mcpfirewall.policy.matcher import PatternMatcher, basename
from mcpfirewall.policy.models import (
    PolicyCategory,
    PolicyRuleSet,
    RuleSetMode,
    ToolCallRequest,
    Verdict,
)
from mcpfirewall.policy.taxonomy import (
    LEGACY_WRITE_TOOLS,
    is_insight,
    is_modification,
)

logger = get_logger(__name__)

TOOLS_CALL_METHOD = "tools/call"

# Argument names that carry file paths
SINGLE_PATH_ARGUMENTS = ("path", "source", "destination")
MULTI_PATH_ARGUMENTS = ("paths",)


def collect_candidate_paths(arguments: dict[str, Any]) -> list[str]:
    """
    Every file path a tool call refers to.

    path, source and destination contribute one entry each, paths
    contributes each of its elements. Empty and non-string values are
    skipped.
    """
    candidates: list[str] = []

    for key in SINGLE_PATH_ARGUMENTS:
        value = arguments.get(key)
        if isinstance(value, str) and value:
            candidates.append(value)

    for key in MULTI_PATH_ARGUMENTS:
        values = arguments.get(key)
        if isinstance(values, list):
            candidates.extend(v for v in values if isinstance(v, str) and v)

    return candidates


class PolicyEngine:
    """
    Evaluates tool calls against a loaded rule set.

    Supports:
    - Two-category rule sets (deny_insight / deny_modification) gated by
      the tool taxonomy
    - Legacy rule sets (deny_read_and_write / deny_write)
    - Glob patterns matched against basenames only

    Usage:
        engine = PolicyEngine.from_file("config.json")
        verdict = engine.evaluate(
            "read_text_file",
            {"path": "/home/me/project/.env"},
        )
        if not verdict.allowed:
            print(f"Blocked: {verdict.matched_paths}")
    """

    def __init__(self, rules: PolicyRuleSet):
        """
        Initialize the policy engine.

        Args:
            rules: The rule set to enforce.
        """
        self.rules = rules
        self.invalid_patterns: list[str] = []
        self._check_patterns()

        logger.info(
            "policy_engine_initialized",
            rule_set=rules.name,
            mode=rules.mode.value,
            confidentiality_count=len(rules.confidentiality),
            integrity_count=len(rules.integrity),
        )

    def _check_patterns(self) -> None:
        """Report patterns that can never match."""
        for pattern in (*self.rules.confidentiality, *self.rules.integrity):
            if not PatternMatcher.is_valid(pattern):
                self.invalid_patterns.append(pattern)
                logger.error("invalid_pattern", pattern=pattern)

    @classmethod
    def from_file(cls, path: Path | str) -> "PolicyEngine":
        """
        Load a rule set from a JSON or YAML file.

        Raises:
            FileNotFoundError: If the rule file doesn't exist.
            ValueError: If the file content is not a valid rule set.
        """
        return cls(load_rule_set(path))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyEngine":
        """Create a policy engine from a dictionary."""
        return cls(PolicyRuleSet.model_validate(data))

    def evaluate_request(self, request: ToolCallRequest) -> Verdict:
        """
        Evaluate a decoded JSON-RPC message.

        Only tools/call requests naming a tool and carrying arguments
        are restricted; everything else is allowed.
        """
        if request.method != TOOLS_CALL_METHOD:
            return Verdict.allow()
        if not request.name or request.arguments is None:
            return Verdict.allow()
        return self.evaluate(request.name, request.arguments)

    def evaluate(
        self,
        operation_name: str,
        operation_arguments: dict[str, Any],
    ) -> Verdict:
        """
        Evaluate a tool call against the rule set.

        Args:
            operation_name: Tool name, e.g. read_text_file.
            operation_arguments: Tool arguments.

        Returns:
            Verdict: allow, or deny with the matching category.
        """
        candidates = collect_candidate_paths(operation_arguments)
        if not candidates:
            return Verdict.allow()

        verdict = self._check_confidentiality(operation_name, candidates)
        if verdict is None:
            verdict = self._check_integrity(operation_name, candidates)
        if verdict is None:
            verdict = Verdict.allow()

        logger.debug(
            "policy_evaluation",
            tool=operation_name,
            paths=candidates,
            allowed=verdict.allowed,
        )

        return verdict

    def _confidentiality_applies(self, operation_name: str) -> bool:
        if self.rules.mode == RuleSetMode.LEGACY:
            return True
        return is_insight(operation_name) or is_modification(operation_name)

    def _integrity_applies(self, operation_name: str) -> bool:
        if self.rules.mode == RuleSetMode.LEGACY:
            return operation_name in LEGACY_WRITE_TOOLS
        return is_modification(operation_name)

    def _check_confidentiality(
        self,
        operation_name: str,
        candidates: list[str],
    ) -> Verdict | None:
        """Deny if any candidate is a file the caller may not see."""
        if not self._confidentiality_applies(operation_name):
            return None
        return self._match(
            candidates, self.rules.confidentiality, PolicyCategory.CONFIDENTIALITY
        )

    def _check_integrity(
        self,
        operation_name: str,
        candidates: list[str],
    ) -> Verdict | None:
        """Deny if a modifying tool touches a write-protected file."""
        if not self._integrity_applies(operation_name):
            return None
        return self._match(
            candidates, self.rules.integrity, PolicyCategory.INTEGRITY
        )

    @staticmethod
    def _match(
        candidates: list[str],
        patterns: tuple[str, ...],
        category: PolicyCategory,
    ) -> Verdict | None:
        matched_paths: list[str] = []
        matched_patterns: list[str] = []

        for candidate in candidates:
            pattern = PatternMatcher.first_match(basename(candidate), patterns)
            if pattern is None:
                continue
            matched_paths.append(candidate)
            if pattern not in matched_patterns:
                matched_patterns.append(pattern)

        if not matched_paths:
            return None
        return Verdict.deny(category, matched_paths, matched_patterns)


def load_rule_set(path: Path | str) -> PolicyRuleSet:
    """
    Read a rule set from disk.

    Files ending in .json are parsed as JSON, anything else as YAML.

    Raises:
        FileNotFoundError: If the rule file doesn't exist.
        ValueError: If the file content is not a valid rule set.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Rule file not found: {path}")

    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    return PolicyRuleSet.model_validate(data)
