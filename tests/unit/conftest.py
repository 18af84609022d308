"""
Shared fixtures: a temporary SQLite database, a fake clock and fake providers.
"""

from datetime import date
from typing import Dict, List, Optional, Union

import pytest
import pytest_asyncio

from devchronicle.batch.client import BatchProvider, BatchSnapshot, CancelResult
from devchronicle.config.settings import SettingsService, SummarizationSettings
from devchronicle.data import RepositoryFactory
from devchronicle.models.day import CommitEvidence, Day, Session
from devchronicle.summarization.providers import (
    CompletionProvider,
    CompletionRequest,
    CompletionResponse,
    ProviderRegistry,
)


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedProvider(CompletionProvider):
    """Completion provider replaying scripted responses or errors."""

    provider_id = "openai"

    def __init__(self, script: Optional[List[Union[CompletionResponse, Exception]]] = None):
        self.script = list(script or [])
        self.requests: List[CompletionRequest] = []

    def can_handle_model(self, model: str) -> bool:
        return True

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("Provider called more times than scripted")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def response(text: str, truncated: bool = False) -> CompletionResponse:
    return CompletionResponse(text=text, truncated=truncated, model="gpt-4o-mini")


class FakeBatchProvider(BatchProvider):
    """In-memory batch API."""

    provider_id = "openai"

    def __init__(self):
        self.uploads: List[str] = []
        self.batches: Dict[str, BatchSnapshot] = {}
        self.files: Dict[str, str] = {}
        self.cancel_results: Dict[str, CancelResult] = {}
        self.canceled: List[str] = []
        self.get_errors: List[Exception] = []

    async def upload_batch_input_file(self, jsonl: str) -> str:
        self.uploads.append(jsonl)
        file_id = f"file-in-{len(self.uploads)}"
        self.files[file_id] = jsonl
        return file_id

    async def create_batch(self, input_file_id: str) -> BatchSnapshot:
        batch_id = f"batch_{len(self.batches) + 1}"
        snapshot = BatchSnapshot(id=batch_id, status="validating", input_file_id=input_file_id)
        self.batches[batch_id] = snapshot
        return snapshot

    async def get_batch(self, provider_batch_id: str) -> BatchSnapshot:
        if self.get_errors:
            raise self.get_errors.pop(0)
        return self.batches[provider_batch_id]

    async def download_file_content(self, file_id: str) -> str:
        return self.files[file_id]

    async def cancel_batch(self, provider_batch_id: str) -> CancelResult:
        result = self.cancel_results.get(provider_batch_id, CancelResult.CANCELED)
        if result is CancelResult.CANCELED:
            self.canceled.append(provider_batch_id)
            snapshot = self.batches[provider_batch_id]
            self.batches[provider_batch_id] = snapshot.model_copy(update={"status": "cancelled"})
        return result

    def finish(self, provider_batch_id: str, output: Optional[str] = None,
               errors: Optional[str] = None, status: str = "completed") -> None:
        """Mark a batch finished with the given output and error file contents."""
        update = {"status": status}
        if output is not None:
            self.files[f"{provider_batch_id}-out"] = output
            update["output_file_id"] = f"{provider_batch_id}-out"
        if errors is not None:
            self.files[f"{provider_batch_id}-err"] = errors
            update["error_file_id"] = f"{provider_batch_id}-err"
        self.batches[provider_batch_id] = self.batches[provider_batch_id].model_copy(update=update)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def repos(tmp_path):
    factory = RepositoryFactory(backend="sqlite", db_path=str(tmp_path / "devchronicle.db"))
    repositories = await factory.create_repositories()
    yield repositories
    await factory.close()


@pytest.fixture
def settings():
    return SummarizationSettings(pending_mode="Live", model="gpt-4o-mini", max_bullets=3,
                                 max_completion_tokens=400)


@pytest_asyncio.fixture
async def settings_service(repos):
    return SettingsService(repos.settings)


@pytest_asyncio.fixture
async def session(repos):
    session = Session(name="demo", repo_path="/tmp/demo")
    await repos.sessions.save_session(session)
    return session


async def add_mined_day(repos, session_id: str, day: date, commits: int = 1) -> Day:
    """Persist a Mined day with some commit evidence."""
    for index in range(commits):
        await repos.evidence.save_commit(CommitEvidence(
            sha=f"{session_id[:8]}{day.strftime('%Y%m%d')}{index:04d}",
            session_id=session_id,
            day=day,
            subject=f"Change {index} on {day.isoformat()}",
            author="dev",
            additions=10 + index,
            deletions=index,
            files=[f"src/module_{index}.py"],
            branches=["main"],
        ))
    record = Day(session_id=session_id, day=day, commit_count=commits)
    await repos.days.save_day(record)
    return record


@pytest.fixture
def mined_day(repos):
    async def create(session_id: str, day: date, commits: int = 1) -> Day:
        return await add_mined_day(repos, session_id, day, commits)
    return create


@pytest.fixture
def scripted():
    """Build a scripted provider and its registry."""
    def build(*steps):
        provider = ScriptedProvider(list(steps))
        return provider, ProviderRegistry([provider])
    return build


@pytest.fixture
def reply():
    return response


@pytest.fixture
def batch_provider():
    return FakeBatchProvider()
