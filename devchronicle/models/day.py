"""
Session, day and day-summary models.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from ..exceptions import FailureKind
from .base import BaseModel, generate_id, utc_now, format_day


class DayStatus(Enum):
    """Lifecycle of a mined day."""
    MINED = "Mined"
    SUMMARIZED = "Summarized"
    APPROVED = "Approved"

    @property
    def is_pending(self) -> bool:
        return self is DayStatus.MINED


@dataclass
class Session(BaseModel):
    """A mining session over one repository."""
    name: str
    repo_path: str = ""
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Day(BaseModel):
    """One calendar day inside a session."""
    session_id: str
    day: date
    status: DayStatus = DayStatus.MINED
    commit_count: int = 0
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def day_key(self) -> str:
        return format_day(self.day)


@dataclass
class CommitEvidence(BaseModel):
    """A single commit that contributes evidence to a day."""
    sha: str
    session_id: str
    day: date
    subject: str
    author: str = ""
    additions: int = 0
    deletions: int = 0
    files: List[str] = field(default_factory=list)
    branches: List[str] = field(default_factory=list)
    is_merge: bool = False


@dataclass
class DayEvidence(BaseModel):
    """Evidence bundle compiled into a prompt for one day."""
    session_id: str
    day: date
    commits: List[CommitEvidence] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.commits

    @property
    def branch_labels(self) -> List[str]:
        labels = []
        for commit in self.commits:
            for branch in commit.branches:
                if branch not in labels:
                    labels.append(branch)
        return labels

    @property
    def integration_events(self) -> List[CommitEvidence]:
        return [c for c in self.commits if c.is_merge]


@dataclass
class DaySummary(BaseModel):
    """Persisted bullet summary for one day."""
    session_id: str
    day: date
    bullets: List[str]
    model: str
    prompt_version: str
    input_hash: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class PendingDayWorkItem:
    """A (session, day) pair awaiting summarization."""
    session_id: str
    day: date
    max_bullets: int


@dataclass(frozen=True)
class DaySummarizationPayload:
    """Everything needed to send one day to a completion provider."""
    session_id: str
    day: date
    model: str
    prompt_version: str
    input_hash: str
    master_prompt: str
    prompt: str
    max_bullets: int
    max_completion_tokens: int


@dataclass(frozen=True)
class SummarizationOutcome:
    """Result of one attempt to summarize a day."""
    success: bool
    bullets: List[str] = field(default_factory=list)
    used_ai: bool = False
    error_message: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    @classmethod
    def succeeded(cls, bullets: List[str], used_ai: bool = True) -> "SummarizationOutcome":
        return cls(success=True, bullets=list(bullets), used_ai=used_ai)

    @classmethod
    def failed(cls, error_message: str, failure_kind: Optional[FailureKind] = None) -> "SummarizationOutcome":
        return cls(success=False, error_message=error_message, failure_kind=failure_kind)
