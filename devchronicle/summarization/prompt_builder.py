"""
Compiles a day's evidence bundle into a summarization prompt.
"""

import hashlib
from typing import List, Optional

from ..config.constants import PROMPT_VERSION
from ..models.base import format_day
from ..models.day import CommitEvidence, DayEvidence
from .bullets import BULLET_MARKER
from .rate_budget import CHARS_PER_TOKEN

MAX_FILES_PER_COMMIT = 8
TRUNCATION_NOTE = "[evidence truncated]"


def compute_input_hash(prompt_version: str, model: str, day, commits: List[CommitEvidence]) -> str:
    """Uppercase SHA-256 over the prompt version, model, day and sorted commits."""
    day_key = day if isinstance(day, str) else format_day(day)
    ordered = sorted(commits, key=lambda c: c.sha)
    material = f"{prompt_version}|{model}|{day_key}|" + "|".join(
        f"{c.sha}:{c.subject}" for c in ordered
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest().upper()


class PromptBuilder:
    """Builds the user prompt for one day."""

    prompt_version = PROMPT_VERSION

    def build_day_prompt(self, evidence: DayEvidence, max_bullets: int,
                         max_input_tokens: Optional[int] = None) -> str:
        """
        Build the evidence prompt for a day.

        Args:
            evidence: Commits mined for the day
            max_bullets: Number of bullets the model may write
            max_input_tokens: Optional cap; trailing commit lines are dropped to fit

        Returns:
            Prompt text
        """
        header = [
            f"Day: {format_day(evidence.day)}",
            f"Commits: {len(evidence.commits)}",
        ]
        if evidence.branch_labels:
            header.append(f"Branches: {', '.join(evidence.branch_labels)}")
        merges = evidence.integration_events
        if merges:
            header.append(f"Integration events: {len(merges)}")

        footer = [
            "",
            f"Write at most {max_bullets} bullets. "
            f"Each bullet must start with \"{BULLET_MARKER}\" and stay on one line.",
        ]

        commit_lines = ["", "Evidence:"]
        for commit in sorted(evidence.commits, key=lambda c: c.sha):
            commit_lines.extend(self._format_commit(commit))

        if max_input_tokens:
            commit_lines = self._fit(header, commit_lines, footer, max_input_tokens * CHARS_PER_TOKEN)

        return "\n".join(header + commit_lines + footer)

    def compute_input_hash(self, model: str, evidence: DayEvidence) -> str:
        return compute_input_hash(self.prompt_version, model, evidence.day, evidence.commits)

    def _format_commit(self, commit: CommitEvidence) -> List[str]:
        churn = f"+{commit.additions}/-{commit.deletions}"
        kind = "merge" if commit.is_merge else "commit"
        lines = [f"{BULLET_MARKER}{kind} {commit.sha[:10]} {churn}: {commit.subject}"]
        if commit.files:
            shown = commit.files[:MAX_FILES_PER_COMMIT]
            more = len(commit.files) - len(shown)
            files = ", ".join(shown)
            if more > 0:
                files += f" (+{more} more)"
            lines.append(f"  files: {files}")
        return lines

    def _fit(self, header: List[str], body: List[str], footer: List[str], max_chars: int) -> List[str]:
        fixed = sum(len(line) + 1 for line in header + footer)
        budget = max_chars - fixed - len(TRUNCATION_NOTE) - 1
        kept = []
        used = 0
        for line in body:
            if used + len(line) + 1 > budget:
                kept.append(TRUNCATION_NOTE)
                return kept
            kept.append(line)
            used += len(line) + 1
        return kept
