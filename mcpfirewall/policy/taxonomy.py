"""
Tool Taxonomy

Static classification of filesystem server tools by what they can do
to a file. Adding a tool is a one-line edit to TOOL_TAXONOMY.
"""

from enum import Enum


class ToolCapability(str, Enum):
    """Capability classes a tool can belong to."""

    INSIGHT = "insight"
    """Can reveal file contents, metadata or existence."""

    MODIFICATION = "modification"
    """Can create, alter, move or delete a file."""


_INSIGHT = frozenset({ToolCapability.INSIGHT})
_MODIFICATION = frozenset({ToolCapability.MODIFICATION})


TOOL_TAXONOMY: dict[str, frozenset[ToolCapability]] = {
    # Reads
    "read_file": _INSIGHT,
    "read_text_file": _INSIGHT,
    "read_media_file": _INSIGHT,
    "read_multiple_files": _INSIGHT,
    "get_file_info": _INSIGHT,

    # Listings reveal existence
    "list_directory": _INSIGHT,
    "list_directory_with_sizes": _INSIGHT,
    "directory_tree": _INSIGHT,
    "search_files": _INSIGHT,

    # Writes
    "write_file": _MODIFICATION,
    "edit_file": _MODIFICATION,
    "move_file": _MODIFICATION,
    "create_directory": _MODIFICATION,
}

# The legacy rule shape only ever write-protected this tool
LEGACY_WRITE_TOOLS: frozenset[str] = frozenset({"write_file"})


def capabilities_of(tool_name: str) -> frozenset[ToolCapability]:
    """Capability classes of a tool; empty for unknown tools."""
    return TOOL_TAXONOMY.get(tool_name, frozenset())


def is_insight(tool_name: str) -> bool:
    return ToolCapability.INSIGHT in capabilities_of(tool_name)


def is_modification(tool_name: str) -> bool:
    return ToolCapability.MODIFICATION in capabilities_of(tool_name)
