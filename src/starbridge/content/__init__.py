"""Episode and campaign content: library, validation and linting."""

from .library import BUILTIN, ContentLibrary, ContentSource, ImportResult, to_json
from .lint import LintIssue, LintLevel, has_errors, lint_campaign, lint_episode, lint_library
from .validation import is_valid_campaign, is_valid_episode

__all__ = [
    "BUILTIN",
    "ContentLibrary",
    "ContentSource",
    "ImportResult",
    "LintIssue",
    "LintLevel",
    "has_errors",
    "is_valid_campaign",
    "is_valid_episode",
    "lint_campaign",
    "lint_episode",
    "lint_library",
    "to_json",
]
