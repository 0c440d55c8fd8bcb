"""
代码获取 - concurrent file-content fetch with per-candidate retry/backoff
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from codeshot.core.config import Settings
from codeshot.core.errors import InsufficientDataError, SourceNotFoundError
from codeshot.core.logging import LogEvent
from codeshot.models.snippets import Candidate
from codeshot.services.base_service import BaseService

T = TypeVar("T")

# (path, ref) -> file text
ContentFetcher = Callable[[str, str], Awaitable[str]]


@dataclass
class FetchStats:
    """Requests issued during one run, retries included."""
    requests: int = 0


class CodeFetcher(BaseService):
    """Fetches file content for the top candidates, tolerating partial failure."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.max_candidates = self.settings.snapshot_max_candidates_to_fetch
        self.max_file_size = self.settings.snapshot_max_file_size_bytes
        self.max_retries = self.settings.snapshot_fetch_max_retries
        self.retry_delay = self.settings.snapshot_fetch_retry_delay
        self.min_successful = self.settings.snapshot_min_successful_fetches

    async def call_with_retry(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        stats: Optional[FetchStats] = None,
    ) -> T:
        """
        带重试调用 - exponential backoff, ``retry_delay * 2**attempt``

        ``SourceNotFoundError`` is not retried; every other failure is, up to
        ``max_retries`` extra attempts. The last error is re-raised.
        Every attempt is counted in ``stats`` when given.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay),
            retry=retry_if_not_exception_type(SourceNotFoundError),
            reraise=True,
        ):
            with attempt:
                if stats is not None:
                    stats.requests += 1
                if attempt.retry_state.attempt_number > 1:
                    self.logger.debug(
                        "source_call_retry",
                        operation=getattr(operation, "__name__", repr(operation)),
                        attempt=attempt.retry_state.attempt_number,
                        max_attempts=self.max_retries + 1,
                    )
                return await operation(*args)

    async def fetch_with_retry(
        self,
        fetch_content: ContentFetcher,
        path: str,
        ref: str,
        stats: Optional[FetchStats] = None,
    ) -> str:
        """单文件获取"""
        return await self.call_with_retry(fetch_content, path, ref, stats=stats)

    async def _fetch_one(
        self,
        candidate: Candidate,
        fetch_content: ContentFetcher,
        ref: str,
        stats: Optional[FetchStats],
    ) -> Optional[Candidate]:
        if candidate.file_size and candidate.file_size > self.max_file_size:
            self.logger.warning("fetch_skipped_large_file", file_path=candidate.file_path, size=candidate.file_size)
            return None

        try:
            content = await self.fetch_with_retry(fetch_content, candidate.file_path, ref, stats)
        except Exception as e:
            self.logger.error("fetch_failed", file_path=candidate.file_path, error=str(e))
            return None

        if not content or not content.strip():
            self.logger.warning("fetch_empty_content", file_path=candidate.file_path)
            return None

        self.logger.debug("fetch_succeeded", file_path=candidate.file_path, length=len(content))
        return candidate.with_content(content)

    async def fetch_code_for_candidates(
        self,
        candidates: Sequence[Candidate],
        fetch_content: ContentFetcher,
        ref: str,
        stats: Optional[FetchStats] = None,
    ) -> List[Candidate]:
        """
        并发获取候选代码

        Args:
            candidates: Ordered candidates; only the first ``max_candidates`` are fetched
            fetch_content: ``(path, ref) -> text`` provided by the repository source
            ref: Commit SHA the content is read at
            stats: Request counter, retries included

        Returns:
            Candidates with ``content`` populated, in their original order

        Raises:
            InsufficientDataError: fewer than ``min_successful`` fetches succeeded
        """
        batch = list(candidates[:self.max_candidates])
        results = await asyncio.gather(*[self._fetch_one(candidate, fetch_content, ref, stats) for candidate in batch])
        fetched = [candidate for candidate in results if candidate is not None]

        self.logger.info(
            LogEvent.CODE_FETCH_COMPLETED,
            total=len(batch),
            successful=len(fetched),
            failed=len(batch) - len(fetched),
            ref=ref,
        )

        if len(fetched) < self.min_successful:
            raise InsufficientDataError(
                f"Insufficient code snippets fetched ({len(fetched)}/{self.min_successful} minimum required)",
                details={"fetched": len(fetched), "attempted": len(batch), "required": self.min_successful},
            )
        return fetched
