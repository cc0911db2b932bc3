"""
Candidate classifier — pydantic-ai judge deciding whether a term names a
newly emerging software tool or digital service people would search for.

Two verdicts share one OpenRouter-backed model:
  classify()       news/external candidates before they may seed a run
  assess_demand()  keywords surfaced by rising-query tasks, judged with the
                   root and parent keyword as context

Runs against OpenRouter through its OpenAI-compatible endpoint.
"""

import asyncio
import logging
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from ..config import Settings
from ..errors import ConfigurationError, UpstreamError
from ..schemas import Candidate, ClassifierLabel

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an analyst helping classify whether a term refers to a newly emerging "
    "software tool, automation, or digital service that people might search for to "
    "solve a task. Respond with the structured verdict only."
)

DEMAND_SYSTEM_PROMPT = (
    "You classify search keywords by whether they indicate demand for a software tool, "
    "automation, or online service. Respond with the structured verdict only."
)

_LABEL_ALIASES = {
    "ai_tool": ClassifierLabel.TOOL.value,
    "software": ClassifierLabel.TOOL.value,
    "software_tool": ClassifierLabel.TOOL.value,
    "productized": ClassifierLabel.TOOL.value,
    "yes": ClassifierLabel.TOOL.value,
    "non_ai": ClassifierLabel.NON_TOOL.value,
    "not_tool": ClassifierLabel.NON_TOOL.value,
    "none": ClassifierLabel.NON_TOOL.value,
    "no": ClassifierLabel.NON_TOOL.value,
    "unknown": ClassifierLabel.UNCLEAR.value,
}


class _Verdict(BaseModel):
    label: ClassifierLabel = ClassifierLabel.UNCLEAR
    score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reason: str = ""

    @field_validator("label", mode="before")
    @classmethod
    def _normalize_label(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            value = _LABEL_ALIASES.get(value, value)
            if value not in {label.value for label in ClassifierLabel}:
                return ClassifierLabel.UNCLEAR.value
        return value

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value):
        if isinstance(value, (int, float)):
            return min(1.0, max(0.0, float(value)))
        return value


class CandidateJudgement(_Verdict):
    """Structured verdict returned by the judge."""


class DemandAssessment(_Verdict):
    """Whether searchers behind a keyword want a software tool."""
    demand_summary: str = ""

    @property
    def is_tool_demand(self) -> bool:
        return ClassifierLabel(self.label) != ClassifierLabel.NON_TOOL

    def as_metadata(self) -> Dict:
        return {
            "label": ClassifierLabel(self.label).value,
            "score": self.score,
            "reason": self.reason or None,
            "summary": self.demand_summary or None,
        }


def build_prompt(candidate: Candidate) -> str:
    parts = [f"Term: {candidate.term}", f"Source: {candidate.source}"]
    if candidate.raw_title:
        parts.append(f"Title: {candidate.raw_title}")
    if candidate.raw_summary:
        parts.append(f"Summary: {candidate.raw_summary}")
    if candidate.url:
        parts.append(f"URL: {candidate.url}")
    parts.append(
        "Task: Decide whether the term represents a newly emerging software tool, automation, "
        "digital product, or online service that people might search for to accomplish a task. "
        "Accept AI-related or non-AI tools as long as a web-based or software solution could "
        "address the underlying need."
    )
    parts.append(
        "If it is primarily entertainment, general news, personalities, funding rounds, "
        "conferences, hardware devices without a software offering, or vague hype with no "
        "actionable user demand, classify it as non_tool."
    )
    parts.append("Return label tool|non_tool|unclear, score between 0 and 1, and a short reason.")
    return "\n".join(parts)


def build_demand_prompt(
    keyword: str,
    root_keyword: Optional[str] = None,
    parent_keyword: Optional[str] = None,
    locale: Optional[str] = None,
    timeframe: Optional[str] = None,
    notes: Optional[str] = None,
) -> str:
    parts = [f"Keyword: {keyword}"]
    if root_keyword:
        parts.append(f"Root Keyword: {root_keyword}")
    if parent_keyword and parent_keyword != keyword:
        parts.append(f"Parent Keyword: {parent_keyword}")
    if locale:
        parts.append(f"Locale: {locale}")
    if timeframe:
        parts.append(f"Timeframe: {timeframe}")
    if notes:
        parts.append(f"Notes: {notes}")
    parts.append(
        "Task: Decide whether searchers behind this keyword are likely seeking a software tool, "
        "automation, or online service that can directly satisfy the need. Focus on practical, "
        "actionable demand."
    )
    parts.append(
        "If no software or automation solution would directly help, classify the term as "
        "non_tool. When unsure, mark unclear."
    )
    parts.append("Summarize the underlying user task in one concise sentence unless it is non_tool.")
    parts.append("Return label tool|non_tool|unclear, score between 0 and 1, demand_summary and a short reason.")
    return "\n".join(parts)


class CandidateClassifier:
    """Judges candidates and keyword demand with cached pydantic-ai Agents."""

    def __init__(self, settings: Settings):
        if not settings.classifier_configured:
            raise ConfigurationError("OPENROUTER_API_KEY is not configured")
        self.settings = settings
        self.timeout = settings.classifier_timeout
        self._agent: Optional[Agent] = None
        self._demand_agent: Optional[Agent] = None
        self._demand_cache: Dict[tuple, DemandAssessment] = {}

    def _model(self) -> OpenAIChatModel:
        return OpenAIChatModel(
            model_name=self.settings.openrouter_model,
            provider=OpenAIProvider(
                base_url=self.settings.openrouter_base_url,
                api_key=self.settings.openrouter_api_key,
            ),
        )

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                self._model(),
                output_type=CandidateJudgement,
                system_prompt=SYSTEM_PROMPT,
                retries=1,
            )
        return self._agent

    def _get_demand_agent(self) -> Agent:
        if self._demand_agent is None:
            self._demand_agent = Agent(
                self._model(),
                output_type=DemandAssessment,
                system_prompt=DEMAND_SYSTEM_PROMPT,
                retries=1,
            )
        return self._demand_agent

    async def _run(self, agent: Agent, prompt: str):
        try:
            result = await asyncio.wait_for(
                agent.run(prompt, model_settings=ModelSettings(temperature=0.0)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"classifier timeout after {self.timeout:.0f}s") from e
        except Exception as e:
            raise UpstreamError(f"classifier failed: {e}") from e
        return result.output

    async def classify(self, candidate: Candidate) -> CandidateJudgement:
        return await self._run(self._get_agent(), build_prompt(candidate))

    async def assess_demand(
        self,
        keyword: str,
        root_keyword: Optional[str] = None,
        parent_keyword: Optional[str] = None,
        locale: Optional[str] = None,
        timeframe: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DemandAssessment:
        """Judge tool demand for a keyword. Successful verdicts are cached per context."""
        key = tuple(
            str(part or "").strip().lower()
            for part in (keyword, root_keyword, parent_keyword, locale, timeframe, notes)
        )
        cached = self._demand_cache.get(key)
        if cached is not None:
            return cached
        prompt = build_demand_prompt(keyword, root_keyword, parent_keyword, locale, timeframe, notes)
        assessment = await self._run(self._get_demand_agent(), prompt)
        self._demand_cache[key] = assessment
        return assessment
