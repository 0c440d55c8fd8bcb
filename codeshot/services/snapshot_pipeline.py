"""
快照生成编排 - drives candidate selection, scoring and rendering for one repository

Run phases:
    load context -> cached snapshots? -> fetch repository data ->
    identify + filter candidates -> fetch code -> selection cache? ->
    score -> rank and truncate -> render, upload and persist each

Precondition failures (missing repository or analysis, foreign owner, no
commits, too few fetched files) abort before anything is persisted.
Per-snippet render/upload/persist failures are logged and skipped.
"""
import asyncio
from functools import partial
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from codeshot.core.config import Settings
from codeshot.core.errors import (
    BaseApplicationError,
    InsufficientDataError,
    NotFoundError,
    RepositorySourceError,
    SourceNotFoundError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from codeshot.core.logging import LogEvent
from codeshot.db.models import CodeSnapshot, ProjectAnalysis, RepositoryRecord
from codeshot.models.snippets import (
    CommitInfo,
    FileEntry,
    GenerationOptions,
    ImageDimensions,
    RenderOptions,
    RepositoryContext,
    ScoredSnippet,
)
from codeshot.services.ai_scorer import AIScorer, ScoringStats
from codeshot.services.base_service import BaseService
from codeshot.services.candidate_identifier import CandidateIdentifier, detect_primary_language
from codeshot.services.code_fetcher import CodeFetcher, FetchStats
from codeshot.services.collaborators import ObjectStorage, Renderer, RepositoryDataSource
from codeshot.services.pipeline_metrics import PipelineMetrics
from codeshot.services.renderer import read_image_dimensions
from codeshot.services.scoring_cache import ScoringCache
from codeshot.services.snapshot_store import SnapshotCreate, SnapshotStore
from codeshot.services.staleness import StalenessInvalidator

# access token -> repository data source
SourceFactory = Callable[[Optional[str]], RepositoryDataSource]


def rank_and_truncate(snippets: List[ScoredSnippet], max_snippets: int) -> List[ScoredSnippet]:
    """Score descending; ties keep candidate order (sorted() is stable)."""
    return sorted(snippets, key=lambda snippet: snippet.selection_score, reverse=True)[:max_snippets]


class SnapshotPipeline(BaseService):
    """Orchestrates snapshot generation, listing, deletion and invalidation."""

    def __init__(
        self,
        store: SnapshotStore,
        scoring_cache: ScoringCache,
        scorer: AIScorer,
        renderer: Renderer,
        storage: ObjectStorage,
        source_factory: SourceFactory,
        identifier: Optional[CandidateIdentifier] = None,
        fetcher: Optional[CodeFetcher] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(settings)
        self.store = store
        self.scoring_cache = scoring_cache
        self.scorer = scorer
        self.renderer = renderer
        self.storage = storage
        self.source_factory = source_factory
        self.identifier = identifier or CandidateIdentifier()
        self.fetcher = fetcher or CodeFetcher(self.settings)
        self.invalidator = StalenessInvalidator(store, scoring_cache, self.settings)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_snapshots(
        self,
        repository_id: str,
        user_id: str,
        access_token: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
    ) -> List[CodeSnapshot]:
        """
        为仓库生成代码快照

        Returns:
            Persisted snapshots, possibly empty when nothing qualifies or
            every render failed

        Raises:
            NotFoundError, UnauthorizedError, InsufficientDataError,
            UpstreamUnavailableError
        """
        options = options or GenerationOptions()
        metrics = PipelineMetrics(run_id=uuid4().hex)
        log = self.logger.bind(repository_id=repository_id, user_id=user_id, run_id=metrics.run_id)
        log.info(LogEvent.GENERATION_STARTED, force_regenerate=options.force_regenerate)

        try:
            repository, analysis = await self._load_context(repository_id, user_id)

            if not options.force_regenerate:
                existing = await self.store.find_fresh_snapshots(repository_id, user_id)
                if existing:
                    log.info(LogEvent.CACHED_SNAPSHOTS_RETURNED, count=len(existing))
                    return existing

            source = self.source_factory(access_token)
            try:
                snapshots = await self._run(source, repository, analysis, user_id, options, metrics)
            finally:
                await source.aclose()

        except BaseApplicationError as e:
            log.warning(LogEvent.GENERATION_FAILED, error_code=e.error_code.value, error=e.message)
            raise
        except Exception as e:
            log.error(LogEvent.GENERATION_FAILED, error=str(e), exc_info=True)
            raise

        metrics.finish()
        log.info(LogEvent.GENERATION_COMPLETED, count=len(snapshots))
        return snapshots

    async def get_owned_repository(self, repository_id: str, user_id: str) -> RepositoryRecord:
        repository = await self.store.get_repository(repository_id)
        if repository is None:
            raise NotFoundError("Repository", repository_id)
        if repository.user_id != user_id:
            raise UnauthorizedError("repository", repository_id)
        return repository

    async def _load_context(self, repository_id: str, user_id: str) -> Tuple[RepositoryRecord, ProjectAnalysis]:
        repository = await self.get_owned_repository(repository_id, user_id)

        analysis = await self.store.get_latest_analysis(repository_id)
        if analysis is None:
            raise NotFoundError(
                "Project analysis",
                hint="Please analyze the repository first.",
            )
        return repository, analysis

    async def _fetch_repository_data(
        self,
        source: RepositoryDataSource,
        repository: RepositoryRecord,
    ) -> Tuple[List[CommitInfo], List[FileEntry]]:
        owner, repo = repository.owner_and_name
        try:
            results = await asyncio.gather(
                self.fetcher.call_with_retry(
                    source.fetch_commit_history, owner, repo, self.settings.snapshot_commit_history_limit
                ),
                self.fetcher.call_with_retry(
                    source.fetch_file_tree, owner, repo, self.settings.snapshot_file_tree_depth
                ),
                return_exceptions=True,
            )
            # 两个请求都结束后再抛出
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            commits, file_tree = results
        except SourceNotFoundError:
            raise NotFoundError("Repository", repository.full_name, hint="It is not reachable at the repository host.")
        except RepositorySourceError as e:
            raise UpstreamUnavailableError("Repository source", e.message)

        if not commits:
            raise InsufficientDataError("Repository has no commits", details={"repository": repository.full_name})
        return list(commits), list(file_tree)

    async def _run(
        self,
        source: RepositoryDataSource,
        repository: RepositoryRecord,
        analysis: ProjectAnalysis,
        user_id: str,
        options: GenerationOptions,
        metrics: PipelineMetrics,
    ) -> List[CodeSnapshot]:
        log = self.logger.bind(repository_id=repository.id, run_id=metrics.run_id)

        # Repository data
        commits, file_tree = await self._fetch_repository_data(source, repository)
        head_sha = commits[0].sha
        context = RepositoryContext(
            repo_name=repository.name,
            repo_description=repository.description or "",
            primary_language=detect_primary_language(file_tree),
            recent_commits=tuple(commits),
            file_tree=tuple(file_tree),
        )

        # Candidates
        metrics.start_stage("identify", len(file_tree))
        candidates = self.identifier.identify_candidates(file_tree, commits, analysis.summary)
        metrics.end_stage("identify", len(candidates))

        metrics.start_stage("filter", len(candidates))
        filtered = self.identifier.filter_boilerplate(candidates)
        metrics.end_stage("filter", len(filtered))

        if not filtered:
            log.warning("no_suitable_snippets", total_files=len(file_tree), candidates_before_filter=len(candidates))
            return []

        # Code content
        metrics.start_stage("fetch", len(filtered))
        fetch_stats = FetchStats()
        fetched = await self.fetcher.fetch_code_for_candidates(
            filtered,
            partial(source.fetch_file_content, *repository.owner_and_name),
            head_sha,
            fetch_stats,
        )
        metrics.end_stage("fetch", len(fetched), api_calls=fetch_stats.requests)

        # Scoring
        metrics.start_stage("score", len(fetched))
        stats = ScoringStats()
        scored = await self.scoring_cache.get_selection(repository.id, head_sha)
        if scored is None:
            scored = await self.scorer.score_candidates(fetched, context, stats)
            await self.scoring_cache.set_selection(repository.id, head_sha, scored)
            metrics.end_stage("score", len(scored), api_calls=stats.ai_calls, cache_hits=stats.cache_hits,
                              cache_misses=len(scored) - stats.cache_hits)
        else:
            metrics.end_stage("score", len(scored), cache_hits=1)

        max_snippets = options.max_snippets or self.settings.snapshot_max_snippets
        top = rank_and_truncate(scored, max_snippets)
        log.info("top_snippets_selected", count=len(top), head_sha=head_sha)

        # Rendering
        render_options = RenderOptions(
            theme=options.theme or self.settings.snapshot_default_theme,
            show_line_numbers=(
                options.show_line_numbers
                if options.show_line_numbers is not None
                else self.settings.snapshot_default_show_line_numbers
            ),
            font_size=options.font_size or self.settings.snapshot_default_font_size,
        )

        metrics.start_stage("render", len(top))
        snapshots: List[CodeSnapshot] = []
        for snippet in top:
            try:
                snapshot = await self._render_snippet(snippet, repository, analysis, user_id, head_sha, render_options)
            except Exception as e:
                log.error(LogEvent.SNIPPET_RENDER_FAILED, file_path=snippet.file_path, error=str(e))
                continue
            if snapshot is not None:
                snapshots.append(snapshot)
        metrics.end_stage("render", len(snapshots))

        return snapshots

    async def _render_snippet(
        self,
        snippet: ScoredSnippet,
        repository: RepositoryRecord,
        analysis: ProjectAnalysis,
        user_id: str,
        head_sha: str,
        render_options: RenderOptions,
    ) -> Optional[CodeSnapshot]:
        candidate = snippet.candidate
        code = candidate.extract_lines()
        if not code.strip():
            self.logger.warning("empty_snippet_skipped", file_path=candidate.file_path)
            return None

        image = await self.renderer.render(
            code,
            candidate.language,
            candidate.file_path,
            render_options.theme,
            show_line_numbers=render_options.show_line_numbers,
            font_size=render_options.font_size,
        )
        image_url = await self.storage.upload(image, user_id, repository.id)

        dimensions = read_image_dimensions(image)
        if dimensions is None:
            self.logger.warning("image_dimensions_defaulted", file_path=candidate.file_path)
            dimensions = ImageDimensions(
                width=self.settings.snapshot_default_image_width,
                height=self.settings.snapshot_default_image_height,
            )

        snapshot = await self.store.create_snapshot(SnapshotCreate(
            repository_id=repository.id,
            analysis_id=analysis.id,
            user_id=user_id,
            file_path=candidate.file_path,
            start_line=candidate.start_line,
            end_line=candidate.end_line,
            function_name=candidate.function_name,
            language=candidate.language,
            lines_of_code=candidate.lines_of_code,
            selection_score=snippet.selection_score,
            selection_reason=snippet.selection_reason,
            image_url=image_url,
            image_size=len(image),
            image_width=dimensions.width,
            image_height=dimensions.height,
            theme=render_options.theme,
            show_line_numbers=render_options.show_line_numbers,
            font_size=render_options.font_size,
            last_commit_sha=head_sha,
        ))
        self.logger.debug(LogEvent.SNIPPET_RENDERED, file_path=candidate.file_path, snapshot_id=snapshot.id)
        return snapshot

    # ------------------------------------------------------------------
    # Queries and maintenance
    # ------------------------------------------------------------------

    async def list_fresh_snapshots(self, repository_id: str, user_id: str) -> List[CodeSnapshot]:
        return await self.store.find_fresh_snapshots(repository_id, user_id)

    async def get_snapshot(self, snapshot_id: str, user_id: str) -> CodeSnapshot:
        snapshot = await self.store.get_snapshot(snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        if snapshot.user_id != user_id:
            raise UnauthorizedError("snapshot", snapshot_id)
        return snapshot

    async def delete_snapshot(self, snapshot_id: str, user_id: str) -> None:
        snapshot = await self.get_snapshot(snapshot_id, user_id)
        try:
            await self.storage.delete(snapshot.image_url)
        except Exception as e:
            self.logger.warning("image_delete_failed", snapshot_id=snapshot_id, error=str(e))
        await self.store.delete_snapshot(snapshot_id)
        self.logger.info("snapshot_deleted", snapshot_id=snapshot_id)

    async def invalidate_on_new_commit(self, repository_id: str, new_head_sha: str) -> int:
        return await self.invalidator.invalidate_on_new_commit(repository_id, new_head_sha)
