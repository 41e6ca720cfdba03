"""Collects configuration problems so one error can report all of them."""
from typing import Dict, List

MISSING = "Missing required settings:"
INVALID = "Invalid values:"
BAD_PATHS = "Invalid paths (directory does not exist):"
DISABLED = "Required settings that must be enabled (set to 1):"
NO_SECTION = "Missing required sections:"

class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self, title: str):
        self.title = title
        self.groups: Dict[str, List[str]] = {}

    def add(self, heading: str, item: str) -> None:
        self.groups.setdefault(heading, []).append(item)

    def has_errors(self) -> bool:
        return any(self.groups.values())

    def format_message(self) -> str:
        """Render every group as a heading followed by indented items"""
        blocks = [
            "\n".join([heading] + [f"  - {item}" for item in items])
            for heading, items in self.groups.items()
        ]
        return f"{self.title}\n\n" + "\n\n".join(blocks)
