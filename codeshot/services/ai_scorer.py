"""
AI评分服务 - scores candidates with an external model, heuristic fallback on failure

Scoring never raises: a malformed response, an exhausted retry sequence or
a missing backend all collapse to the heuristic score.
"""
import asyncio
import json
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from pydantic import ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_chain, wait_fixed

from codeshot.core.config import Settings
from codeshot.core.errors import ScoringError
from codeshot.core.logging import LogEvent
from codeshot.models.snippets import AIAnalysis, Candidate, RepositoryContext, ScoredSnippet
from codeshot.services.base_service import BaseService
from codeshot.services.candidate_identifier import calculate_heuristic_score
from codeshot.services.collaborators import ScoringBackend
from codeshot.services.scoring_cache import ScoringCache

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?")

PROMPT_TEMPLATE = """You are an expert code analyst evaluating code snippets for social media sharing.

Repository Context:
- Name: {repo_name}
- Description: {repo_description}
- Primary Language: {primary_language}
- Recent Changes: {recent_changes}

Code Snippet:
File: {file_path}
Lines: {start_line}-{end_line}
Language: {language}
{function_line}
```{language}
{code}
```

Analyze this code snippet and provide a JSON response with the following structure:
{{
  "selectionScore": <number 0-100>,
  "selectionReason": "<brief explanation in 1-2 sentences>",
  "complexity": "<low|medium|high>",
  "significance": "<low|medium|high>",
  "isCoreFunctionality": <boolean>,
  "isRecentlyChanged": <boolean>,
  "technicalInterest": "<brief description of what makes this code interesting>"
}}

Scoring criteria:
- Cyclomatic complexity (higher = more interesting)
- Architectural centrality (core algorithms score higher)
- Recent additions or refactors (newer = more interesting)
- Technical patterns (design patterns, algorithms, optimizations)
- Code clarity and readability (clearer = better for sharing)

Respond ONLY with valid JSON."""


@dataclass
class ScoringStats:
    """Counters collected while scoring one run."""
    ai_calls: int = 0
    cache_hits: int = 0
    fallbacks: int = 0


def build_scoring_prompt(candidate: Candidate, context: RepositoryContext) -> str:
    """构建评分提示词"""
    recent = ", ".join(context.recent_commit_messages[:5])
    return PROMPT_TEMPLATE.format(
        repo_name=context.repo_name,
        repo_description=context.repo_description or "No description",
        primary_language=context.primary_language,
        recent_changes=recent or "No recent commits",
        file_path=candidate.file_path,
        start_line=candidate.start_line,
        end_line=candidate.end_line,
        language=candidate.language,
        function_line=f"Function: {candidate.function_name}\n" if candidate.function_name else "",
        code=candidate.content or "",
    )


def parse_scoring_response(text: str) -> AIAnalysis:
    """
    Parse and validate the model's JSON answer.

    Markdown fences are stripped first. Any structural problem raises
    ``ScoringError``; partial results are never returned.
    """
    cleaned = _FENCE_RE.sub("", text).replace("```", "").strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ScoringError(f"response is not valid JSON: {e}", raw_response=text)

    if not isinstance(payload, dict):
        raise ScoringError("response is not a JSON object", raw_response=text)

    try:
        return AIAnalysis.model_validate(payload)
    except ValidationError as e:
        raise ScoringError(f"invalid response structure: {e.error_count()} error(s)", raw_response=text)


class AIScorer(BaseService):
    """Per-candidate scoring with content-addressed caching."""

    def __init__(
        self,
        backend: Optional[ScoringBackend],
        cache: ScoringCache,
        settings: Optional[Settings] = None,
    ):
        super().__init__(settings)
        self.backend = backend
        self.cache = cache
        self.retry_delays = list(self.settings.snapshot_ai_retry_delays)
        self.batch_size = max(1, self.settings.snapshot_parallel_batch_size)

    async def _call_backend(self, prompt: str, stats: ScoringStats) -> AIAnalysis:
        """Call the backend through the escalating delay table; the whole sequence is retried."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, len(self.retry_delays))),
            wait=wait_chain(*[wait_fixed(delay) for delay in self.retry_delays]) if self.retry_delays else wait_fixed(0),
            reraise=True,
        ):
            with attempt:
                stats.ai_calls += 1
                text = await self.backend.score(prompt)
                if not text:
                    raise ScoringError("backend returned an empty response")
                return parse_scoring_response(text)

    def heuristic_fallback(self, candidate: Candidate, context: RepositoryContext) -> ScoredSnippet:
        return ScoredSnippet.heuristic(candidate, calculate_heuristic_score(candidate, context))

    async def score_candidate(
        self,
        candidate: Candidate,
        context: RepositoryContext,
        stats: Optional[ScoringStats] = None,
    ) -> ScoredSnippet:
        """Score one candidate: cache, then AI with retries, then heuristic."""
        stats = stats if stats is not None else ScoringStats()

        cached = await self.cache.get_analysis(context.repo_name, candidate)
        if cached is not None:
            stats.cache_hits += 1
            return ScoredSnippet.from_analysis(candidate, cached)

        if self.backend is None:
            stats.fallbacks += 1
            self.logger.info(LogEvent.AI_SCORING_FALLBACK, file_path=candidate.file_path, error="no scoring backend")
            return self.heuristic_fallback(candidate, context)

        try:
            analysis = await self._call_backend(build_scoring_prompt(candidate, context), stats)
        except Exception as e:
            stats.fallbacks += 1
            self.logger.warning(LogEvent.AI_SCORING_FALLBACK, file_path=candidate.file_path, error=str(e))
            return self.heuristic_fallback(candidate, context)

        await self.cache.set_analysis(context.repo_name, candidate, analysis)
        return ScoredSnippet.from_analysis(candidate, analysis)

    async def score_candidates(
        self,
        candidates: Sequence[Candidate],
        context: RepositoryContext,
        stats: Optional[ScoringStats] = None,
    ) -> List[ScoredSnippet]:
        """
        批量评分 - batches run one after another, candidates inside a batch concurrently

        Results keep the input order.
        """
        stats = stats if stats is not None else ScoringStats()
        results: List[ScoredSnippet] = []

        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            results.extend(
                await asyncio.gather(*[self.score_candidate(candidate, context, stats) for candidate in batch])
            )

        self.logger.info(
            LogEvent.SCORING_COMPLETED,
            total=len(results),
            ai_calls=stats.ai_calls,
            cache_hits=stats.cache_hits,
            fallbacks=stats.fallbacks,
        )
        return results
