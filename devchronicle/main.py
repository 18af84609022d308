"""
Main application entry point for DevChronicle summarization.

This module wires the components together:
- Environment configuration and persisted settings
- SQLite repositories
- Completion providers with the shared rate budget
- OpenAI batch client and batch lifecycle
- Summarization runner and batch monitors
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .batch import BatchLifecycleManager, OpenAIBatchClient
from .config import AppConfig, ConfigValidator, EnvironmentLoader, SettingsService
from .data import Repositories, RepositoryFactory
from .exceptions import DevChronicleException
from .models.base import parse_day
from .models.operation import OperationState, OperationStatus
from .orchestration import BatchMonitor, BatchMonitorRegistry, SessionContext, SummarizationRunner
from .summarization import AnthropicProvider, DaySummarizer, OpenAIProvider, ProviderRegistry, RateBudget
from .summarization.providers import OpenAIHttpClient

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NEEDS_INPUT = 2


class DevChronicleApp:
    """Main application class wiring storage, providers and the runner."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.repository_factory: Optional[RepositoryFactory] = None
        self.repositories: Optional[Repositories] = None
        self.settings_service: Optional[SettingsService] = None
        self.providers: Optional[ProviderRegistry] = None
        self.batch_client: Optional[OpenAIBatchClient] = None
        self.batch_manager: Optional[BatchLifecycleManager] = None
        self.monitor_registry = BatchMonitorRegistry()
        self.session_context = SessionContext()
        self.runner: Optional[SummarizationRunner] = None

        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[logging.StreamHandler(sys.stderr)]
        )
        self.logger = logging.getLogger(__name__)

    async def initialize(self, env_file: Optional[str] = None, db_path: Optional[str] = None):
        """Initialize all application components.

        Args:
            env_file: Optional .env file to load
            db_path: Overrides DEVCHRONICLE_DB_PATH when given
        """
        self.logger.info("Initializing DevChronicle...")

        self.config = EnvironmentLoader.load_config(env_file)
        if db_path:
            self.config.db_path = db_path
        ConfigValidator.validate_or_raise(self.config)
        logging.getLogger().setLevel(self.config.log_level)

        await self._initialize_database()
        await self._initialize_summarization()

        self.logger.info("All components initialized successfully")

    async def _initialize_database(self):
        self.logger.info(f"Initializing database at {self.config.db_path}...")
        Path(self.config.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.repository_factory = RepositoryFactory(backend="sqlite", db_path=self.config.db_path)
        self.repositories = await self.repository_factory.create_repositories()
        self.settings_service = SettingsService(self.repositories.settings, self.config)

    async def _initialize_summarization(self):
        repos = self.repositories
        timeout = self.config.http_timeout_seconds

        self.providers = ProviderRegistry()
        anthropic_key = await self.settings_service.get_anthropic_api_key()
        if anthropic_key:
            self.providers.register(AnthropicProvider(
                api_key=anthropic_key,
                base_url=self.config.anthropic_base_url,
                default_timeout=timeout,
            ))
            self.logger.info("Anthropic provider enabled for claude-* models")

        openai_key = await self.settings_service.get_openai_api_key()
        if not openai_key:
            self.logger.warning("No OpenAI API key configured; OpenAI calls will fail authentication")
        openai_http = OpenAIHttpClient(openai_key or "", self.config.openai_base_url, timeout)
        self.providers.register(OpenAIProvider(openai_key or "", http=openai_http))
        self.batch_client = OpenAIBatchClient(openai_http)

        summarizer = DaySummarizer(
            evidence=repos.evidence,
            summaries=repos.summaries,
            providers=self.providers,
            rate_budget=RateBudget(),
        )
        self.batch_manager = BatchLifecycleManager(
            batches=repos.batches,
            days=repos.days,
            summaries=repos.summaries,
            summarizer=summarizer,
            provider=self.batch_client,
        )
        monitor = BatchMonitor(self.batch_manager, self.monitor_registry)
        self.runner = SummarizationRunner(
            session_context=self.session_context,
            settings_service=self.settings_service,
            days=repos.days,
            summarizer=summarizer,
            batch_manager=self.batch_manager,
            monitor=monitor,
        )
        self.runner.subscribe(self._log_status)
        self.runner.on_day_summarized(
            lambda day: self.logger.info(f"Day summarized: {day.isoformat()}")
        )

    async def select_session(self, session_id: Optional[str]) -> None:
        """Select the given session, or the most recently created one."""
        if session_id:
            if await self.repositories.sessions.get_session(session_id) is None:
                self.logger.warning(f"Session {session_id} not found")
                return
            self.session_context.select(session_id)
            return
        sessions = await self.repositories.sessions.list_sessions()
        if sessions:
            self.session_context.select(sessions[0].id)
            self.logger.info(f"Using most recent session {sessions[0].id}")

    async def stop(self):
        """Stop every component and release connections."""
        self.logger.info("Stopping DevChronicle...")
        if self.runner:
            await self.runner.shutdown()
        # The batch client shares the OpenAI provider's http client
        if self.providers:
            await self.providers.close()
        if self.repository_factory:
            await self.repository_factory.close()
        self.logger.info("DevChronicle stopped")

    def _log_status(self, status: OperationStatus) -> None:
        if status.state is OperationState.RUNNING:
            self.logger.info(status.message)
        elif status.state is OperationState.SUCCESS:
            self.logger.info(f"{status.state.value}: {status.message}")
        else:
            recover = f" ({status.recover_action})" if status.recover_action else ""
            self.logger.warning(f"{status.state.value}: {status.message}{recover}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devchronicle", description="Summarize mined development days.")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--session", help="Session id (defaults to the most recent session)")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("summarize-pending", help="Summarize all pending days in the configured mode")
    day_parser = commands.add_parser("summarize-day", help="Summarize one day via the live path")
    day_parser.add_argument("day", help="Day in YYYY-MM-DD format")
    commands.add_parser("resume", help="Resume monitoring of unfinished batches")
    commands.add_parser("cancel-batches", help="Cancel active batches of the session")
    commands.add_parser("status", help="Show pending days and active batches")
    return parser


def exit_code_for(status: OperationStatus) -> int:
    if status.state is OperationState.ERROR:
        return EXIT_ERROR
    if status.state is OperationState.NEEDS_INPUT:
        return EXIT_NEEDS_INPUT
    return EXIT_OK


async def run_command(app: DevChronicleApp, args: argparse.Namespace) -> int:
    runner = app.runner

    if args.command == "summarize-pending":
        return exit_code_for(await runner.summarize_pending_days())

    if args.command == "summarize-day":
        try:
            day = parse_day(args.day)
        except ValueError:
            print(f"Invalid day '{args.day}', expected YYYY-MM-DD", file=sys.stderr)
            return EXIT_NEEDS_INPUT
        return exit_code_for(await runner.summarize_selected_day(day))

    if args.command == "resume":
        started = await runner.resume_active_batches()
        print(f"Monitoring {started} batch job(s).")
        await runner.wait_for_background()
        return EXIT_OK

    if args.command == "cancel-batches":
        await runner.stop()
        print(runner.status.message)
        return exit_code_for(runner.status)

    if args.command == "status":
        return await print_status(app)

    return EXIT_ERROR


async def print_status(app: DevChronicleApp) -> int:
    session_id = app.session_context.session_id
    if not session_id:
        print("No session selected.")
        return EXIT_NEEDS_INPUT

    repos = app.repositories
    settings = await app.settings_service.load_summarization_settings()
    lines: List[str] = [
        f"Session: {session_id}",
        f"Pending mode: {settings.pending_mode} (model {settings.model})",
        f"Pending days: {await repos.days.count_pending_days(session_id)}",
        f"Summarized days: {await repos.summaries.count_summaries(session_id)}",
    ]
    active = await repos.batches.list_active_batches(session_id)
    lines.append(f"Active batches: {len(active)}")
    for batch in active:
        lines.append(f"  {batch.id} ({batch.provider_batch_id}): {batch.status.value}")
    print("\n".join(lines))
    return EXIT_OK


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)
    app = DevChronicleApp()

    try:
        await app.initialize(env_file=args.env_file, db_path=args.db)
        await app.select_session(args.session)

        loop = asyncio.get_running_loop()
        command = asyncio.ensure_future(run_command(app, args))
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, command.cancel)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

        try:
            return await command
        except asyncio.CancelledError:
            app.logger.info("Interrupted; unfinished batches can be picked up with 'resume'")
            return EXIT_ERROR

    except DevChronicleException as e:
        app.logger.error(f"Fatal error: {e.message}")
        print(e.get_user_response(), file=sys.stderr)
        return EXIT_ERROR
    finally:
        await app.stop()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
