"""
Local disk storage helpers for document artifact bytes.
"""
from __future__ import annotations

import hashlib
import re
from pathlib import Path

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def artifacts_root(data_dir: Path) -> Path:
    return data_dir / "artifacts"


def ensure_dirs(data_dir: Path) -> None:
    """Create data directories if they don't exist."""
    artifacts_root(data_dir).mkdir(parents=True, exist_ok=True)


def sha256_bytes(data: bytes) -> str:
    """Compute sha256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def safe_path_component(value: str) -> str:
    cleaned = _UNSAFE_PATH_CHARS.sub("_", value or "").strip("._")
    return cleaned or "unknown"


def get_artifact_path(data_dir: Path, hospital_number: str, artifact_id: str, extension: str = "pdf") -> Path:
    """Return the full path to a specific artifact."""
    return artifacts_root(data_dir) / safe_path_component(hospital_number) / f"{safe_path_component(artifact_id)}.{extension}"


def save_artifact(data_dir: Path, hospital_number: str, artifact_id: str, data: bytes, extension: str = "pdf") -> Path:
    """
    Write artifact bytes once. Raises FileExistsError instead of overwriting.
    """
    ensure_dirs(data_dir)
    path = get_artifact_path(data_dir, hospital_number, artifact_id, extension)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "xb") as fh:
        fh.write(data)
    return path


def read_artifact(path: Path) -> bytes:
    return path.read_bytes()


def delete_artifact(path: Path) -> bool:
    """Remove a stored artifact file. Returns False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
