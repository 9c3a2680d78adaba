"""Git context for audits.

Reads branch, commit and base branch of the working tree with the git CLI.
Outside a repository (or without git installed) there is no context.
"""

from __future__ import annotations

import logging
import subprocess

from lighthouse_pulse.exceptions import PulseError
from lighthouse_pulse.models import GitContext

logger = logging.getLogger(__name__)

BASE_BRANCH_CANDIDATES = ("main", "master", "develop", "staging")


class GitError(PulseError):
    """Raised when a git command fails."""


class GitRepository:
    """Read-only view of a git working tree."""

    def __init__(self, path: str = ".", timeout: float = 10.0) -> None:
        self.path = path
        self.timeout = timeout

    def _git(self, *args: str) -> str:
        try:
            completed = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitError(f"git {' '.join(args)} could not run: {exc}") from exc
        if completed.returncode != 0:
            raise GitError(f"git {' '.join(args)} failed: {completed.stderr.strip()}")
        return completed.stdout.strip()

    def is_repository(self) -> bool:
        try:
            return self._git("rev-parse", "--is-inside-work-tree") == "true"
        except GitError:
            return False

    def current_branch(self) -> str:
        """Current branch name, the short HEAD sha when detached, else '(detached)'."""
        try:
            branch = self._git("branch", "--show-current")
        except GitError:
            branch = ""
        if branch:
            return branch
        try:
            return self._git("rev-parse", "--short", "HEAD")
        except GitError:
            return "(detached)"

    def current_commit(self) -> str:
        try:
            return self._git("rev-parse", "HEAD")
        except GitError:
            return "(no commits)"

    def commit_message(self, commit: str) -> str:
        try:
            return self._git("log", "-1", "--format=%s", commit) or "(unknown)"
        except GitError:
            return "(unknown)"

    def local_branches(self) -> list[str]:
        output = self._git("branch", "--format=%(refname:short)")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def base_branch(self) -> str:
        """First of main, master, develop, staging that exists locally, else 'unknown'."""
        try:
            branches = set(self.local_branches())
        except GitError as exc:
            logger.warning("Base branch detection failed: %s", exc)
            return "unknown"
        for candidate in BASE_BRANCH_CANDIDATES:
            if candidate in branches:
                return candidate
        return "unknown"

    def get_context(self) -> GitContext | None:
        """Branch, commit, base branch and commit subject, or None outside a repository."""
        if not self.is_repository():
            return None
        commit = self.current_commit()
        return GitContext(
            branch=self.current_branch(),
            commit=commit,
            base_branch=self.base_branch(),
            commit_message=self.commit_message(commit),
        )
