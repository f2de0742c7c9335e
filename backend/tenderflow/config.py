from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "TenderFlow"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://127.0.0.1:5173", "http://localhost:5173"]
    # Bearer token for privileged callers (trigger, kick, user provisioning).
    service_token: str = ""
    # Full URL of the process-job endpoint used for best-effort re-triggers.
    process_job_url: str | None = None
    trigger_timeout_seconds: float = 10.0
    analysis_url: str | None = None
    analysis_api_key: str | None = None
    analysis_timeout_seconds: float = 90.0
    mock_extract: bool = False
    mock_ai: bool = False
    max_upload_bytes: int = 25 * 1024 * 1024  # 25 MiB
    max_input_chars: int = 120_000
    kick_batch_size: int = 3

    @property
    def db_path(self) -> Path:
        return self.data_path / "db.sqlite"

    @property
    def storage_dir(self) -> Path:
        return self.data_path / "uploads"

    model_config = {"env_prefix": "TENDERFLOW_"}


settings = Settings()
