"""
Live day summarizer.

Builds the payload for one day, drives the completion provider through the
continuation rounds under the shared rate budget, and stores the result.
"""

import logging
from datetime import date
from typing import Optional

from ..config.settings import SummarizationSettings
from ..data.base import DaySummaryRepository, EvidenceRepository
from ..exceptions import (
    DevChronicleException,
    EvidenceError,
    FailureKind,
    classify_failure,
    create_error_context,
)
from ..models.base import format_day
from ..models.day import DaySummarizationPayload, DaySummary, SummarizationOutcome
from .continuation import ContinuationCompiler, ContinuationState, MAX_ROUNDS
from .prompt_builder import PromptBuilder
from .providers import CompletionRequest, ProviderRegistry
from .rate_budget import RateBudget, estimate_tokens

logger = logging.getLogger(__name__)

NO_BULLETS_MESSAGE = "Model returned no bullet output."


def provider_id_for_model(model: str) -> str:
    """Provider that serves a model name."""
    return "anthropic" if (model or "").strip().lower().startswith("claude-") else "openai"


PROVIDER_DISPLAY_NAMES = {"openai": "OpenAI", "anthropic": "Anthropic"}


def provider_display_name(model: str) -> str:
    """Human-readable name of the provider serving a model, used in status lines."""
    provider_id = provider_id_for_model(model)
    return PROVIDER_DISPLAY_NAMES.get(provider_id, provider_id)


class DaySummarizer:
    """Summarizes one day at a time through a live completion provider."""

    def __init__(self,
                 evidence: EvidenceRepository,
                 summaries: DaySummaryRepository,
                 providers: ProviderRegistry,
                 rate_budget: RateBudget,
                 prompt_builder: Optional[PromptBuilder] = None,
                 continuation: Optional[ContinuationCompiler] = None,
                 max_rounds: int = MAX_ROUNDS):
        self.evidence = evidence
        self.summaries = summaries
        self.providers = providers
        self.rate_budget = rate_budget
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.continuation = continuation or ContinuationCompiler()
        self.max_rounds = max_rounds

    async def build_payload(self, session_id: str, day: date,
                            settings: SummarizationSettings,
                            max_bullets: Optional[int] = None) -> DaySummarizationPayload:
        """
        Compile the evidence of a day into a provider-ready payload.

        Args:
            session_id: Session the day belongs to
            day: Calendar day
            settings: Resolved summarization settings
            max_bullets: Override of the configured bullet budget

        Returns:
            Payload with prompts, sizing and input hash

        Raises:
            EvidenceError: If the day has no mined evidence
        """
        evidence = await self.evidence.get_commit_evidence_for_day(session_id, day)
        if evidence.is_empty:
            raise EvidenceError(
                f"No commit evidence found for {format_day(day)}",
                context=create_error_context(session_id=session_id, day=format_day(day)),
            )

        bullets = max_bullets or settings.max_bullets
        budget = self.rate_budget.plan_call_budget(
            provider_id_for_model(settings.model), settings.model, settings.max_completion_tokens
        )
        prompt_tokens = max(1, budget.max_input_tokens - estimate_tokens(settings.master_prompt))
        prompt = self.prompt_builder.build_day_prompt(evidence, bullets, max_input_tokens=prompt_tokens)

        return DaySummarizationPayload(
            session_id=session_id,
            day=day,
            model=settings.model,
            prompt_version=self.prompt_builder.prompt_version,
            input_hash=self.prompt_builder.compute_input_hash(settings.model, evidence),
            master_prompt=settings.master_prompt,
            prompt=prompt,
            max_bullets=bullets,
            max_completion_tokens=budget.max_output_tokens,
        )

    async def summarize_day(self, session_id: str, day: date,
                            settings: SummarizationSettings) -> SummarizationOutcome:
        """Run one attempt for a day; failures come back as unsuccessful outcomes."""
        day_key = format_day(day)
        try:
            payload = await self.build_payload(session_id, day, settings)
            state = await self.complete_with_continuation(payload)
            bullets = state.final_bullets()
            if not bullets:
                logger.warning(f"No bullets produced for {day_key} after {state.rounds} round(s)")
                return SummarizationOutcome.failed(NO_BULLETS_MESSAGE, FailureKind.NON_RETRYABLE)

            if state.used_fallback:
                logger.warning(f"Using unstructured first response for {day_key}")

            await self.summaries.store_day_summary(DaySummary(
                session_id=session_id,
                day=day,
                bullets=bullets,
                model=payload.model,
                prompt_version=payload.prompt_version,
                input_hash=payload.input_hash,
            ))
            logger.info(f"Summarized {day_key}: {len(bullets)} bullet(s) in {state.rounds} round(s)")
            return SummarizationOutcome.succeeded(bullets, used_ai=True)

        except DevChronicleException as e:
            logger.warning(f"Summarization attempt for {day_key} failed: {e.message}")
            return SummarizationOutcome.failed(e.message, classify_failure(e.message, e))
        except Exception as e:
            logger.exception(f"Unexpected error summarizing {day_key}")
            message = str(e) or type(e).__name__
            return SummarizationOutcome.failed(message, classify_failure(message))

    async def complete_with_continuation(self, payload: DaySummarizationPayload) -> ContinuationState:
        """Issue completion rounds until the bullets are complete."""
        provider = self.providers.resolve(payload.model)
        state = ContinuationState(max_bullets=payload.max_bullets, max_rounds=self.max_rounds)
        system_tokens = estimate_tokens(payload.master_prompt)
        prompt = payload.prompt

        while True:
            await self.rate_budget.acquire(
                provider.provider_id,
                payload.model,
                system_tokens + estimate_tokens(prompt),
                payload.max_completion_tokens,
            )
            response = await provider.complete(CompletionRequest(
                model=payload.model,
                system_prompt=payload.master_prompt,
                user_prompt=prompt,
                max_output_tokens=payload.max_completion_tokens,
            ))
            result = state.accept_round(response.text, response.truncated)
            logger.debug(
                f"Round {state.rounds} for {format_day(payload.day)}: "
                f"{len(result.new_bullets)} new bullet(s), truncated={response.truncated}"
            )

            if state.is_complete:
                return state

            prompt = self.continuation.build_prompt(
                payload.prompt, state.bullets, state.partial_bullet, state.remaining
            )
