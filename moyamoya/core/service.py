from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..export.exporter_docx import export_docx_file
from ..export.exporter_txt import export_txt_file
from .bootstrap import ensure_data_dirs
from .config import EXPORTS_DIR, SESSIONS_DIR
from .flow import Conversation
from .state import create_session_state, load_session, save_session
from .text_service import LocalTextService, TextService

logger = logging.getLogger(__name__)

ensure_data_dirs()

# NOTE:
# This module is the integration point for the UI adapter.
# Behavior is controlled via environment variables:
# - USE_LLM=0 -> placeholder mode (demo-safe)
# - USE_LLM=1 -> LLM-backed summaries, artifacts, critique and chat

_service: Optional[TextService] = None


def get_text_service() -> TextService:
    global _service
    if _service is None:
        _service = LocalTextService()
    return _service


# -----------------------------
# Sessions
# -----------------------------
def create_conversation(service: Optional[TextService] = None, **kwargs: Any) -> Conversation:
    state = create_session_state()
    logger.info("new session %s", state.session_id)
    return Conversation(service or get_text_service(), state=state, **kwargs)


def resume(
    session_id: str,
    data_dir: str = SESSIONS_DIR,
    service: Optional[TextService] = None,
    **kwargs: Any,
) -> Conversation:
    """Rebuild a conversation from disk. Pending free input / generation are not restored."""
    state = load_session(session_id, data_dir=data_dir)
    return Conversation(service or get_text_service(), state=state, **kwargs)


def persist(convo: Conversation, data_dir: str = SESSIONS_DIR) -> str:
    return save_session(convo.state, data_dir=data_dir)


# -----------------------------
# Export
# -----------------------------
def export(
    session_id: str,
    fmt: str = "docx",
    data_dir: str = SESSIONS_DIR,
    out_dir: str = EXPORTS_DIR,
) -> Dict[str, Any]:
    """Write the four artifacts (markdown source) of a saved session."""
    state = load_session(session_id, data_dir=data_dir)
    if state.artifacts is None:
        raise ValueError(f"Session {session_id} has no generated artifacts")
    outputs = state.artifacts.to_dict()

    if fmt.lower() == "txt":
        path = export_txt_file(out_dir, session_id, outputs)
        return {"session_id": session_id, "format": "txt", "path": path}

    path = export_docx_file(out_dir, session_id, outputs)
    return {"session_id": session_id, "format": "docx", "path": path}
