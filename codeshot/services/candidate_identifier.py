"""
候选片段识别 - heuristic candidate selection from a repository file tree

No network or AI calls happen here: candidates are proposed from tree
metadata and commit history only, then ordered by heuristic interest.
"""
from __future__ import annotations

import re
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from codeshot.core.logging import LogEvent, get_logger
from codeshot.models.snippets import Candidate, CommitInfo, FileEntry, RepositoryContext, SCORE_MAX

logger = get_logger(__name__)

# 文件大小窗口 (bytes)
MIN_FILE_SIZE = 100
MAX_FILE_SIZE = 50_000
BYTES_PER_LINE = 40
MIN_LINES = 10
MAX_LINES = 100

CODE_EXTENSIONS = frozenset({
    "ts", "tsx", "js", "jsx", "py", "java", "go", "rs", "cpp", "c", "h",
    "cs", "rb", "php", "swift", "kt", "scala", "dart",
})

# Syntax-highlighter language ids, used for rendering
LANGUAGE_BY_EXTENSION = {
    "ts": "typescript",
    "tsx": "tsx",
    "js": "javascript",
    "jsx": "jsx",
    "py": "python",
    "java": "java",
    "go": "go",
    "rs": "rust",
    "cpp": "cpp",
    "c": "c",
    "h": "c",
    "cs": "csharp",
    "rb": "ruby",
    "php": "php",
    "swift": "swift",
    "kt": "kotlin",
    "scala": "scala",
    "dart": "dart",
}

# Display names, used for the repository's primary language
LANGUAGE_NAMES = {
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "py": "Python",
    "java": "Java",
    "go": "Go",
    "rs": "Rust",
    "cpp": "C++",
    "c": "C",
    "cs": "C#",
    "rb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "kt": "Kotlin",
    "scala": "Scala",
    "dart": "Dart",
}

CONFIG_PATTERNS = [
    re.compile(r"\.config\.(ts|js)$"),
    re.compile(r"(^|/)\.[^/]*rc$"),
    re.compile(r"package\.json$"),
    re.compile(r"tsconfig\.json$"),
    re.compile(r"webpack\.config"),
    re.compile(r"vite\.config"),
    re.compile(r"jest\.config"),
    re.compile(r"\.env"),
    re.compile(r"(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|Cargo\.lock|go\.sum)$"),
]

TEST_PATTERNS = [
    re.compile(r"\.test\.(ts|tsx|js|jsx)$"),
    re.compile(r"\.spec\.(ts|tsx|js|jsx)$"),
    re.compile(r"(^|/)__tests__/"),
    re.compile(r"(^|/)tests?/"),
    re.compile(r"(^|/)test_[^/]*\.py$"),
    re.compile(r"_test\.(py|go)$"),
    re.compile(r"(^|/)(fixtures|__fixtures__)/"),
]

GENERATED_PATTERNS = [
    re.compile(r"\.generated\."),
    re.compile(r"\.min\.(js|css)$"),
    re.compile(r"(^|/)dist/"),
    re.compile(r"(^|/)build/"),
    re.compile(r"(^|/)node_modules/"),
    re.compile(r"(^|/)vendor/"),
]

CORE_PATTERNS = [
    re.compile(r"^src/index\."),
    re.compile(r"^src/main\."),
    re.compile(r"^src/app\."),
    re.compile(r"^src/server\."),
    re.compile(r"^index\."),
    re.compile(r"^main\."),
]
SERVICE_PATTERN = re.compile(r"service|controller|handler|api", re.IGNORECASE)
UTILITY_PATTERN = re.compile(r"util|helper|lib|common", re.IGNORECASE)

PUBLIC_API_PATTERN = re.compile(r"^(get|set|create|update|delete|fetch|save|remove|handle|process)", re.IGNORECASE)
COMPLEX_NAME_PATTERN = re.compile(r"calculate|compute|analyze|process|transform|validate", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def file_extension(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def detect_language(path: str) -> str:
    """Highlighter language id for ``path`` (``"text"`` when unknown)."""
    return LANGUAGE_BY_EXTENSION.get(file_extension(path), "text")


def detect_primary_language(file_tree: Iterable[FileEntry]) -> str:
    """Most frequent recognised language in the tree, ``"unknown"`` if none."""
    counts: Counter = Counter()
    for entry in file_tree:
        if entry.type != "file":
            continue
        language = LANGUAGE_NAMES.get(file_extension(entry.path))
        if language:
            counts[language] += 1

    if not counts:
        return "unknown"
    # Counter.most_common keeps first-seen order on ties
    return counts.most_common(1)[0][0]


def estimate_lines(size: int) -> int:
    return size // BYTES_PER_LINE


def is_config_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in CONFIG_PATTERNS)


def is_test_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in TEST_PATTERNS)


def is_generated_file(path: str) -> bool:
    return any(pattern.search(path) for pattern in GENERATED_PATTERNS)


def is_boilerplate(path: str) -> bool:
    return is_config_file(path) or is_test_file(path) or is_generated_file(path)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _mentions(commit: CommitInfo, path: str) -> bool:
    basename = path.rsplit("/", 1)[-1]
    return path in commit.message or basename in commit.message


# ---------------------------------------------------------------------------
# Heuristic score components
# ---------------------------------------------------------------------------


def recency_score(last_modified: Optional[datetime], now: Optional[datetime] = None) -> int:
    """0-30 points by days since the last change."""
    if last_modified is None:
        return 0
    now = _as_utc(now or datetime.now(timezone.utc))
    days = (now - _as_utc(last_modified)).days
    if days <= 7:
        return 30
    if days <= 30:
        return 20
    if days <= 90:
        return 10
    return 0


def size_score(lines_of_code: int) -> int:
    """0-30 points; 20-50 lines is the sweet spot."""
    if 20 <= lines_of_code <= 50:
        return 30
    if 10 <= lines_of_code < 20:
        return 20
    if 50 < lines_of_code <= 100:
        return 15
    return 5


def file_role_score(path: str) -> int:
    """0-20 points: entry points > services > utilities > other."""
    if any(pattern.search(path) for pattern in CORE_PATTERNS):
        return 20
    if SERVICE_PATTERN.search(path):
        return 15
    if UTILITY_PATTERN.search(path):
        return 10
    return 5


def symbol_name_score(function_name: Optional[str]) -> int:
    """0-20 points by what the enclosing symbol's name suggests."""
    if not function_name:
        return 5
    if PUBLIC_API_PATTERN.search(function_name):
        return 20
    if len(function_name) > 15 or COMPLEX_NAME_PATTERN.search(function_name):
        return 15
    return 10


def calculate_heuristic_score(
    candidate: Candidate,
    context: Optional[RepositoryContext] = None,
    now: Optional[datetime] = None,
) -> int:
    """Pure heuristic interest score in [0, 100].

    Used both to order candidates before fetching and as the scoring
    fallback when the AI backend is unavailable.
    """
    last_modified = candidate.last_modified
    if last_modified is None and context is not None:
        last_modified = _newest_commit_date(context.recent_commits)

    score = (
        recency_score(last_modified, now)
        + size_score(candidate.lines_of_code)
        + file_role_score(candidate.file_path)
        + symbol_name_score(candidate.function_name)
    )
    return max(0, min(score, SCORE_MAX))


def _newest_commit_date(commits: Sequence[CommitInfo]) -> Optional[datetime]:
    dates = [_as_utc(commit.date) for commit in commits if commit.date is not None]
    return max(dates) if dates else None


# ---------------------------------------------------------------------------
# Identifier
# ---------------------------------------------------------------------------


class CandidateIdentifier:
    """Proposes and filters snippet candidates from repository metadata."""

    def identify_candidates(
        self,
        file_tree: Sequence[FileEntry],
        commits: Sequence[CommitInfo],
        summary: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Candidate]:
        """
        Propose whole-file candidates, most interesting first.

        Args:
            file_tree: Repository tree entries
            commits: Recent commits, newest first
            summary: Project summary (context only; not scored)
            now: Reference time for recency, defaults to the current time

        Returns:
            Candidates ordered by heuristic score, then commit mentions,
            then tree order. Empty when nothing qualifies.
        """
        newest = _newest_commit_date(commits)
        scored = []

        for index, entry in enumerate(file_tree):
            if entry.type != "file" or file_extension(entry.path) not in CODE_EXTENSIONS:
                continue
            if entry.size < MIN_FILE_SIZE or entry.size > MAX_FILE_SIZE:
                continue

            mentioning = [commit for commit in commits if _mentions(commit, entry.path)]
            last_modified = _newest_commit_date(mentioning) or newest
            lines = estimate_lines(entry.size)

            candidate = Candidate(
                file_path=entry.path,
                start_line=1,
                end_line=max(lines, 1),
                language=detect_language(entry.path),
                lines_of_code=lines,
                file_size=entry.size,
                last_modified=last_modified,
                commit_mentions=len(mentioning),
            )
            score = calculate_heuristic_score(candidate, now=now)
            scored.append((score, candidate.commit_mentions, index, candidate))

        scored.sort(key=lambda item: (-item[0], -item[1], item[2]))
        candidates = [item[3] for item in scored]

        logger.info(
            LogEvent.CANDIDATES_IDENTIFIED,
            tree_entries=len(file_tree),
            candidates=len(candidates),
            has_summary=bool(summary),
        )
        return candidates

    def filter_boilerplate(self, candidates: Sequence[Candidate]) -> List[Candidate]:
        """Drop config, test and generated files plus out-of-range line counts; order is kept."""
        kept = [
            candidate
            for candidate in candidates
            if not is_boilerplate(candidate.file_path)
            and MIN_LINES <= candidate.lines_of_code <= MAX_LINES
        ]
        logger.debug("boilerplate_filtered", before=len(candidates), after=len(kept))
        return kept
