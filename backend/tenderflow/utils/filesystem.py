from pathlib import Path
from tenderflow.config import settings


def ensure_data_dirs(data_path: Path | None = None) -> Path:
    path = data_path or settings.data_path
    path.mkdir(parents=True, exist_ok=True)
    (path / "uploads").mkdir(exist_ok=True)
    return path


def ensure_job_dir(root: Path, user_id: str, job_id: str) -> Path:
    job_dir = root / sanitize_filename(user_id) / sanitize_filename(job_id)
    job_dir.mkdir(parents=True, exist_ok=True)
    return job_dir


def sanitize_filename(name: str) -> str:
    keep = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")
    return "".join(c if c in keep else "_" for c in name)
