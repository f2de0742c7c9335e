import os
from pathlib import Path

from tenderflow.utils.filesystem import ensure_job_dir, sanitize_filename
from tenderflow.utils.hashing import sha256_bytes


class StorageError(RuntimeError):
    pass


class LocalObjectStore:
    """Uploaded documents on local disk, addressed by paths relative to ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def put(self, user_id: str, job_id: str, filename: str, content: bytes) -> str:
        """Store a document immutably. Returns the relative path."""
        file_hash = sha256_bytes(content)
        stored_name = f"{file_hash[:8]}_{sanitize_filename(filename)}"

        job_dir = ensure_job_dir(self.root, user_id, job_id)
        doc_path = job_dir / stored_name
        if not doc_path.exists():
            doc_path.write_bytes(content)
            os.chmod(doc_path, 0o444)

        return doc_path.relative_to(self.root).as_posix()

    def resolve(self, path: str) -> Path:
        root = self.root.resolve()
        full_path = (root / path).resolve()
        if not full_path.is_relative_to(root):
            raise StorageError(f"Path escapes storage root: {path}")
        return full_path

    def get(self, path: str | None) -> bytes:
        if not path:
            raise StorageError("Job has no stored document")
        full_path = self.resolve(path)
        try:
            return full_path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Could not read {path}: {exc}") from exc
