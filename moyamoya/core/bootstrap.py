from pathlib import Path

from .config import EXPORTS_DIR, SESSIONS_DIR


def ensure_data_dirs(*dirs: str) -> None:
    for p in dirs or (SESSIONS_DIR, EXPORTS_DIR):
        Path(p).mkdir(parents=True, exist_ok=True)
