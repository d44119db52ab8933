import asyncio
import logging
import time

from pydantic import BaseModel

from app.agent.base import BaseAgent
from app.agent.fallback import build_fallback_analysis
from app.agent.llm_client import CompletionClient, LLMProviderError, LLMTimeoutError
from app.agent.prompts.analysis import ANALYSIS_SYSTEM_PROMPT, build_analysis_prompt
from app.core.config import settings

logger = logging.getLogger(__name__)

# Responses shorter than this are treated as a failed completion.
MIN_ANALYSIS_CHARS = 50


class PropertyAnalysisInput(BaseModel):
    property_address: str
    acquisition_notes: str | None = None
    analysis_type: str = "standard"


class AnalysisOutcome(BaseModel):
    ai_analysis: str
    tokens_used: int = 0
    processing_time: int
    is_demo_mode: bool = False
    model: str | None = None
    fallback_reason: str | None = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class PropertyAnalysisAgent(BaseAgent[PropertyAnalysisInput, AnalysisOutcome]):
    """
    Runs one bounded LLM call for a property.
    A timeout, an auth failure or an empty answer yields the canned report instead;
    any other provider error is raised to the caller.
    """

    def __init__(self, llm: CompletionClient | None = None, *, timeout: float | None = None):
        super().__init__(llm)
        self.timeout = timeout if timeout is not None else settings.ANALYSIS_TIMEOUT_SECONDS

    def _fallback(
        self, input_data: PropertyAnalysisInput, started: float, reason: str
    ) -> AnalysisOutcome:
        logger.warning(
            "Serving canned analysis for %s: %s", input_data.property_address, reason
        )
        return AnalysisOutcome(
            ai_analysis=build_fallback_analysis(
                input_data.property_address, input_data.acquisition_notes
            ),
            tokens_used=0,
            processing_time=_elapsed_ms(started),
            is_demo_mode=True,
            fallback_reason=reason,
        )

    async def run(self, input_data: PropertyAnalysisInput) -> AnalysisOutcome:
        started = time.perf_counter()

        if not self.llm.is_configured:
            return self._fallback(input_data, started, f"no {self.llm.provider} API key configured")

        prompt = build_analysis_prompt(
            input_data.property_address,
            input_data.acquisition_notes,
            input_data.analysis_type,
        )
        logger.info(
            "Starting %s analysis (%s chars prompt) for %s",
            self.llm.provider,
            len(prompt),
            input_data.property_address,
        )

        try:
            completion = await asyncio.wait_for(
                self.llm.generate_text(
                    ANALYSIS_SYSTEM_PROMPT,
                    prompt,
                    temperature=settings.ANALYSIS_TEMPERATURE,
                    max_tokens=settings.ANALYSIS_MAX_TOKENS,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, LLMTimeoutError):
            return self._fallback(input_data, started, f"timed out after {self.timeout}s")
        except LLMProviderError as exc:
            if exc.is_auth_error:
                return self._fallback(input_data, started, f"authentication failed ({exc.message})")
            raise

        if len(completion.text.strip()) < MIN_ANALYSIS_CHARS:
            return self._fallback(input_data, started, "empty or too short response")

        processing_time = _elapsed_ms(started)
        logger.info(
            "Analysis completed by %s in %sms (%s tokens)",
            completion.model,
            processing_time,
            completion.tokens_used,
        )
        return AnalysisOutcome(
            ai_analysis=completion.text,
            tokens_used=completion.tokens_used,
            processing_time=processing_time,
            is_demo_mode=False,
            model=completion.model,
        )


def get_analysis_agent() -> PropertyAnalysisAgent:
    return PropertyAnalysisAgent()
