# core/config.py

"""
Application Configuration
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Panel Job API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api"
    host: str = "0.0.0.0"
    port: int = 8000

    # Retry Settings
    max_retries: int = 2
    initial_backoff_ms: int = 1000

    # Persistence Settings
    persistence_backend: str = "file"
    persist_debounce_ms: int = 250
    jobs_dir: str = "results/jobs"

    # Generation Settings
    generation_mode: str = "mock"
    profiling_delay_ms: int = 500
    design_init_delay_ms: int = 300
    linter_enabled: bool = True

    class Config:
        env_prefix = "PANEL_JOBS_"
        case_sensitive = False


settings = Settings()
