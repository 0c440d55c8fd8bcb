"""
配置管理 - 使用Pydantic Settings实现环境变量管理
All snapshot pipeline tunables are read from the environment (or ``.env``).
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings - every field can be overridden by an env var."""

    # API配置
    api_v1_prefix: str = Field(default="/api/v1", description="API route prefix")
    project_name: str = Field(default="Codeshot", description="Project name")
    version: str = Field(default="1.0.0", description="Service version")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=True, description="Render logs as JSON")

    # AI scoring backend (OpenAI-compatible)
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI-compatible API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    scoring_model: str = Field(default="gpt-4o-mini", description="Model used to score snippets")
    scoring_timeout: float = Field(default=30.0, description="Per-call timeout for scoring requests (seconds)")

    # Repository data source
    github_api_url: str = Field(default="https://api.github.com", description="GitHub REST API base URL")
    github_timeout: float = Field(default=15.0, description="GitHub request timeout (seconds)")

    # Renderer / object storage
    renderer_url: str = Field(default="http://localhost:3002/render", description="Code-to-image rendering endpoint")
    renderer_timeout: float = Field(default=30.0, description="Render request timeout (seconds)")
    storage_path: str = Field(default="uploads/snapshots", description="Local directory for rendered images")
    storage_base_url: str = Field(default="http://localhost:8000/static/snapshots", description="Public URL prefix for stored images")

    # 数据库配置
    database_url: str = Field(
        default="sqlite+aiosqlite:///./codeshot.db",
        description="SQL database connection string"
    )

    # Redis配置 (可选)
    redis_url: Optional[str] = Field(default=None, description="Redis URL; in-process cache is used when unset")
    redis_ttl: int = Field(default=3600, description="Default cache TTL (seconds)")

    # Snapshot pipeline
    snapshot_max_snippets: int = Field(default=5, description="Snippets rendered per run")
    snapshot_max_candidates_to_fetch: int = Field(default=15, description="Candidates whose content is fetched")
    snapshot_min_successful_fetches: int = Field(default=3, description="Fetch floor below which a run aborts")
    snapshot_max_file_size_bytes: int = Field(default=100_000, description="Files above this size are never fetched")
    snapshot_fetch_max_retries: int = Field(default=2, description="Retries per file fetch")
    snapshot_fetch_retry_delay: float = Field(default=1.0, description="Base fetch backoff delay (seconds)")
    snapshot_ai_retry_delays: List[float] = Field(
        default=[1.0, 2.0, 4.0],
        description="Escalating delay table for scoring retries; its length is the attempt count",
    )
    snapshot_parallel_batch_size: int = Field(default=5, description="Concurrent scoring calls per batch")
    snapshot_selection_cache_ttl: int = Field(default=86_400, description="Selection cache TTL (seconds)")
    snapshot_analysis_cache_ttl: Optional[int] = Field(
        default=None,
        description="Per-candidate analysis cache TTL (seconds); None keeps entries until evicted",
    )
    snapshot_default_theme: str = Field(default="nord", description="Default render theme")
    snapshot_default_show_line_numbers: bool = Field(default=False, description="Default line-number rendering")
    snapshot_default_font_size: int = Field(default=14, description="Default render font size")
    snapshot_default_image_width: int = Field(default=1200, description="Fallback image width")
    snapshot_default_image_height: int = Field(default=800, description="Fallback image height")
    snapshot_commit_history_limit: int = Field(default=50, description="Commits fetched per run")
    snapshot_file_tree_depth: int = Field(default=3, description="Directory depth of the fetched file tree")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # 忽略未定义的环境变量
    )

    @property
    def uses_redis(self) -> bool:
        """Whether a Redis cache store is configured."""
        return bool(self.redis_url)


@lru_cache()
def get_settings() -> Settings:
    """
    获取配置单例
    使用lru_cache确保全局只有一个Settings实例
    """
    return Settings()
