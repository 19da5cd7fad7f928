from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Optional

from .artifacts import ArtifactSet
from .config import generation_cancel_grace_sec
from .constants import ARTIFACT_KEYS
from .text_service import ServiceError

logger = logging.getLogger(__name__)

LOADING_SCOPE = "loading"

PROGRESS_TEXTS = (
    "📋 活動紹介を作成しています…",
    "📅 90日プランを組み立てています…",
    "💰 資金計画を計算しています…",
    "✉️ 文章パックをつくっています…",
    "✨ 最終チェックしています…",
)
PROGRESS_SUB = "あなた専用のプランを作っています"
PROGRESS_INTERVAL_SEC = 4.0

CANCELLED_MESSAGE = "生成をキャンセルしました。もう一度試すか、質問内容を変えてみてください。"
NETWORK_ERROR_MESSAGE = "通信エラーが発生しました。ページを再読み込みしてお試しください。"
FAILED_MESSAGE = "生成中にエラーが発生しました。もう一度お試しください。"


class GenerationOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    BUSY = "busy"


class GenerationTrigger:
    """
    Sends the slot store to the text service and lands exactly one outcome
    in the transcript. Cancellation is cooperative: only an abort the user
    asked for becomes CANCELLED; any other CancelledError propagates.
    """

    def __init__(self, convo, cancel_grace_sec: Optional[float] = None):
        self.convo = convo
        self.cancel_grace_sec = generation_cancel_grace_sec() if cancel_grace_sec is None else cancel_grace_sec
        self.cancel_available = False
        self.last_outcome: Optional[GenerationOutcome] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> bool:
        """Abort the in-flight request. Allowed before the grace period too (programmatic callers)."""
        if not self.in_flight:
            return False
        self._cancel_requested = True
        self._task.cancel()
        return True

    def _offer_cancel(self) -> None:
        if self.in_flight:
            self.cancel_available = True
            self.convo.emit("generation_cancel_available")

    async def _tick(self) -> None:
        for text in PROGRESS_TEXTS[1:]:
            await asyncio.sleep(PROGRESS_INTERVAL_SEC)
            self.convo.emit("generation_progress", text=text, sub=PROGRESS_SUB)

    async def run(self) -> GenerationOutcome:
        if self.in_flight:
            return GenerationOutcome.BUSY

        convo = self.convo
        convo.clear_choices()
        scope = convo.modals.enter(LOADING_SCOPE)
        self._cancel_requested = False
        self.cancel_available = False
        convo.emit("generation_started", text=PROGRESS_TEXTS[0], sub=PROGRESS_SUB)

        loop = asyncio.get_running_loop()
        offer = loop.call_later(self.cancel_grace_sec, self._offer_cancel)
        ticker = asyncio.create_task(self._tick())
        self._task = asyncio.create_task(convo.service.generate_artifacts(convo.slots.to_dict()))

        try:
            result = await self._task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            logger.info("generation cancelled by user")
            outcome, message = GenerationOutcome.CANCELLED, CANCELLED_MESSAGE
        except ServiceError as e:
            logger.warning("generation transport error: %s", e)
            outcome, message = GenerationOutcome.FAILED, NETWORK_ERROR_MESSAGE
        else:
            payload = result.payload if result.success else None
            if isinstance(payload, dict) and any(payload.get(k) for k in ARTIFACT_KEYS):
                outcome, message = GenerationOutcome.SUCCEEDED, None
            else:
                logger.warning("generation failed: %s %s", result.error_code, result.error_message)
                outcome, message = GenerationOutcome.FAILED, FAILED_MESSAGE
        finally:
            offer.cancel()
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            convo.modals.exit(scope)
            self._task = None
            self.cancel_available = False
            convo.emit("generation_finished")

        self.last_outcome = outcome
        if outcome is GenerationOutcome.SUCCEEDED:
            state = convo.state
            state.artifacts = ArtifactSet(result.payload)
            state.source = result.source
            state.is_mock = result.is_fallback
            state.reviewed_sections = []
            convo.report_provenance(result)
            convo.show_results()
        else:
            convo.add_ai_message(message)
            convo.show_generate_affordance()
        return outcome
