"""
Policy Models

Pydantic models for rule sets, intercepted tool calls and verdicts.
Rule sets are loaded from JSON or YAML at startup and never change
afterwards.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


ACCESS_DENIED_CODE = -32000
ACCESS_DENIED_MESSAGE = "Access denied by MCP Firewall Policy."

# Rule file keys per shape, mapped to (confidentiality, integrity)
TAXONOMY_KEYS = ("deny_insight", "deny_modification")
LEGACY_KEYS = ("deny_read_and_write", "deny_write")


class RuleSetMode(str, Enum):
    """Which rule file shape a rule set was loaded from."""

    TAXONOMY = "taxonomy"
    """deny_insight / deny_modification, gated by the tool taxonomy."""

    LEGACY = "legacy"
    """deny_read_and_write / deny_write, no taxonomy lookup."""


class PolicyCategory(str, Enum):
    """Rule category that produced a denial."""

    CONFIDENTIALITY = "confidentiality"
    INTEGRITY = "integrity"


class PolicyRuleSet(BaseModel):
    """
    Immutable set of deny patterns.

    Accepts either rule file shape and normalises it into two
    categories plus a mode discriminant.

    Example JSON:
    ```json
    {
      "deny_insight": [".env", "secret.*", "id_rsa*"],
      "deny_modification": ["*.lock", "package.json"]
    }
    ```

    Legacy JSON:
    ```json
    {
      "deny_read_and_write": ["*.key"],
      "deny_write": ["*.db"]
    }
    ```
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        default="default",
        description="Human-readable name of the rule set"
    )

    mode: RuleSetMode = Field(
        default=RuleSetMode.TAXONOMY,
        description="Rule file shape this set was loaded from"
    )

    confidentiality: tuple[str, ...] = Field(
        default=(),
        description="Filename patterns that must not be revealed"
    )

    integrity: tuple[str, ...] = Field(
        default=(),
        description="Filename patterns that must not be mutated"
    )

    @model_validator(mode="before")
    @classmethod
    def _normalise_shape(cls, data: Any) -> Any:
        """Map a raw rule file onto the unified categories."""
        if not isinstance(data, dict):
            raise ValueError("Rule set must be a mapping")

        has_taxonomy = any(key in data for key in TAXONOMY_KEYS)
        has_legacy = any(key in data for key in LEGACY_KEYS)

        # Already normalised, e.g. from model_dump()
        if not has_taxonomy and not has_legacy and (
            "confidentiality" in data or "integrity" in data
        ):
            return data

        if has_taxonomy and has_legacy:
            raise ValueError(
                "Rule set mixes deny_insight/deny_modification with "
                "deny_read_and_write/deny_write"
            )
        if not has_taxonomy and not has_legacy:
            raise ValueError(
                "Rule set defines none of: "
                + ", ".join(TAXONOMY_KEYS + LEGACY_KEYS)
            )

        mode = RuleSetMode.TAXONOMY if has_taxonomy else RuleSetMode.LEGACY
        confidentiality_key, integrity_key = (
            TAXONOMY_KEYS if has_taxonomy else LEGACY_KEYS
        )

        normalised: dict[str, Any] = {
            "mode": mode,
            "confidentiality": data.get(confidentiality_key) or [],
            "integrity": data.get(integrity_key) or [],
        }
        if "name" in data:
            normalised["name"] = data["name"]
        return normalised

    @property
    def pattern_count(self) -> int:
        return len(self.confidentiality) + len(self.integrity)


class ToolCallRequest(BaseModel):
    """
    A decoded JSON-RPC message as seen by the policy engine.

    Built tolerantly: a params or arguments value that is not an
    object is treated as absent rather than rejected.
    """

    model_config = ConfigDict(frozen=True)

    method: str = Field(
        default="",
        description="JSON-RPC method, e.g. tools/call"
    )

    id: Any = Field(
        default=None,
        description="Opaque request id, echoed back verbatim"
    )

    has_id: bool = Field(
        default=False,
        description="Whether the message carried an id member"
    )

    name: str | None = Field(
        default=None,
        description="Tool name from params.name"
    )

    arguments: dict[str, Any] | None = Field(
        default=None,
        description="Tool arguments from params.arguments"
    )

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ToolCallRequest":
        """Extract the fields the engine cares about from a message."""
        method = message.get("method")
        params = message.get("params")
        if not isinstance(params, dict):
            params = {}

        name = params.get("name")
        arguments = params.get("arguments")

        return cls(
            method=method if isinstance(method, str) else "",
            id=message.get("id"),
            has_id="id" in message,
            name=name if isinstance(name, str) else None,
            arguments=arguments if isinstance(arguments, dict) else None,
        )


class Verdict(BaseModel):
    """Result of evaluating one request against the rule set."""

    allowed: bool = Field(
        description="Whether the request may reach the backend"
    )

    code: int | None = Field(
        default=None,
        description="JSON-RPC error code on denial"
    )

    message: str | None = Field(
        default=None,
        description="Error message on denial"
    )

    category: PolicyCategory | None = Field(
        default=None,
        description="Rule category that denied the request"
    )

    matched_paths: list[str] = Field(
        default_factory=list,
        description="Candidate paths whose basename matched a deny pattern"
    )

    matched_patterns: list[str] = Field(
        default_factory=list,
        description="Deny patterns that matched"
    )

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def deny(
        cls,
        category: PolicyCategory,
        matched_paths: list[str],
        matched_patterns: list[str],
    ) -> "Verdict":
        return cls(
            allowed=False,
            code=ACCESS_DENIED_CODE,
            message=ACCESS_DENIED_MESSAGE,
            category=category,
            matched_paths=matched_paths,
            matched_patterns=matched_patterns,
        )
