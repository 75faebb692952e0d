from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Report metadata
    app_environment: str = "development"
    app_version: str = "1.0.0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Record store (SQLite file, relative to CWD unless absolute)
    db_path: str = "data/switchboard.db"
    record_entities: list[str] = ["users", "active_calls", "call_logs"]

    # Asterisk Manager Interface (telephony gateway)
    ami_host: str = "172.20.10.5"
    ami_port: int = 5038
    ami_username: str = ""  # empty = gateway client disabled
    ami_secret: str = ""
    ami_timeout: float = 2.0  # seconds, per socket operation
    ami_keepalive_interval: float = 15.0

    # Collection budgets
    probe_budget_ms: int = 1000
    metrics_budget_ms: int = 500
    cpu_sample_seconds: float = 0.25  # must stay below metrics_budget_ms
    probe_workers: int = 16

    # Resource thresholds that force a critical overall status (strictly greater)
    cpu_critical_percent: float = 90.0
    memory_critical_percent: float = 95.0
    disk_critical_percent: float = 95.0

    # SSE stream push interval
    stream_interval_seconds: float = 5.0

    @property
    def ami_address(self) -> str:
        return f"{self.ami_host}:{self.ami_port}"


settings = Settings()
