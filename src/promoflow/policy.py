"""Release branch policy.

Only builds of release branches are promoted. Branch patterns are glob
patterns, so ``master`` matches exactly and ``release-*`` matches every
``release-`` branch.

Example:
    >>> policy = ReleaseBranchPolicy(["master", "release-*"])
    >>> policy.is_release_branch("release-1.2")
    True
    >>> policy.is_release_branch("feature-123")
    False
"""

from __future__ import annotations

from collections.abc import Iterable
from fnmatch import fnmatchcase

DEFAULT_RELEASE_BRANCHES: tuple[str, ...] = ("master",)


class ReleaseBranchPolicy:
    """Allow-list of release branch glob patterns.

    Attributes:
        patterns: The configured glob patterns, in order.
    """

    def __init__(self, patterns: Iterable[str] = DEFAULT_RELEASE_BRANCHES) -> None:
        self.patterns: tuple[str, ...] = tuple(patterns)

    def is_release_branch(self, branch: str) -> bool:
        """Return True if ``branch`` matches any configured pattern."""
        if not branch:
            return False
        return any(fnmatchcase(branch, pattern) for pattern in self.patterns)

    def __repr__(self) -> str:
        return f"ReleaseBranchPolicy(patterns={list(self.patterns)!r})"


__all__ = ["DEFAULT_RELEASE_BRANCHES", "ReleaseBranchPolicy"]
