"""
Pipeline configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "destinations-pipeline"
    app_version: str = "0.1.0"
    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR)$")

    # Search index (Algolia admin API)
    algolia_app_id: str = ""
    algolia_admin_key: str = ""
    algolia_index_name: str = "travel_destinations"
    upload_batch_size: int = Field(default=1000, ge=1)
    index_task_poll_interval_s: float = Field(default=0.5, gt=0.0)
    index_task_timeout_s: float = Field(default=300.0, gt=0.0)
    index_http_timeout_s: float = 30.0

    # Anthropic
    anthropic_api_key: str = ""

    # Enrichment
    enrichment_model: str = "claude-haiku-4-5-20251001"
    enrichment_max_tokens: int = 800
    enrichment_temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    enrichment_max_retries: int = Field(default=3, ge=1)
    enrichment_retry_delay_s: float = Field(default=1.0, ge=0.0)
    enrichment_concurrency: int = Field(default=5, ge=1)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    def missing_credentials(self) -> list[str]:
        """Names of the env vars a live (non dry-run) pipeline needs but lacks."""
        missing: list[str] = []
        if not self.algolia_app_id:
            missing.append("ALGOLIA_APP_ID")
        if not self.algolia_admin_key:
            missing.append("ALGOLIA_ADMIN_KEY")
        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")
        return missing
