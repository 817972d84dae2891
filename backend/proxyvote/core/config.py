from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Proxy Vote Review"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # LLM (provider: google | anthropic)
    review_provider: str = "google"
    extraction_model: str = ""  # agenda + indicator stages, auto-defaults per provider if empty
    reasoning_model: str = ""  # fact + decision stages, auto-defaults per provider if empty
    google_ai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_timeout_ms: int = 120_000

    # Oracle call policy
    extraction_max_retries: int = 2
    extraction_retry_backoff_seconds: float = 1.0

    # Fact reconciliation
    facts_pages_per_chunk: int = 50

    # Uploads
    extraction_max_file_size_mb: int = 50
    max_evidence_files: int = 10

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
