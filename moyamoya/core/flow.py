from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..review.engine import ReviewPhase, ReviewSession
from ..review.sections import split_sections
from ..review.track_changes import ArtifactViews
from .config import choices_delay, thinking_delay_range
from .constants import ARTIFACT_KEYS, ARTIFACT_LABELS, BACK_COMMANDS, OTHER_CHOICE_VALUE
from .free_input import MODE_CHAT, MODE_INPUT, FreeInputInterceptor, FreeInputSession, TextHandler
from .generation import GenerationOutcome, GenerationTrigger
from .modal import ModalScope, ModalStack
from .state import SessionState, SlotStore, create_session_state
from .steps import OTHER_ACK, OTHER_PLACEHOLDER, STEPS, is_rich_message
from .text_service import ServiceError, TextService
from .transcript import ACTOR_AI, ACTOR_USER
from .types import Choice, RenderIntent, ServiceResult, Step, TranscriptEntry

logger = logging.getLogger(__name__)

RESULTS_SCOPE = "results"

BACK_LABEL = "← ひとつ前に戻る"
GENERATE_LABEL = "✨ 生成する"
GENERATE_BACK_LABEL = "← 戻って修正する"

MOCK_NOTICE = "デモ用のサンプル内容を表示しています。"
FALLBACK_NOTICE = "AIの応答を取得できなかったため、サンプル内容を表示しています。"

COMPLETION_MESSAGE = "生成が完了しました 🎉\n結果はいつでも見直せます。\n\n他に気になることがあれば、何でも聞いてください。"
POST_GENERATION_ACTIONS = (
    ("reopen", "📋 結果をもう一度見る"),
    ("export", "📄 まとめて出力"),
    ("chat", "💬 もっと聞く（雑談・質問）"),
)

FREE_CHAT_INTRO = (
    "何でも聞いてください 💬\n\n例えば：\n"
    "・他にどんな支援策があるか知りたい\n"
    "・似たような活動の事例を教えて\n"
    "・助成金の探し方を教えて\n"
    "・文章をもう少し変えたい\n\n"
    "自由に入力して送ってください。"
)
FREE_CHAT_PLACEHOLDER = "例：助成金の探し方を教えて…"
CHAT_PENDING = "考え中…"
CHAT_APOLOGY = "すみません、うまく答えられませんでした。もう一度お試しください。"
CHAT_NETWORK_ERROR = "通信エラーが発生しました。"
CHAT_EXCERPT_CHARS = 500

AUDIT_FAILED = "品質チェックに失敗しました。もう一度お試しください。"
IMPROVE_FAILED = "改善に失敗しました。もう一度お試しください。"


class Conversation:
    """
    The wizard engine: step cursor, slots, transcript, free input,
    generation, results surface and review, all over one SessionState.

    Nothing here touches a view. Every visible change is emitted as a
    RenderIntent; the adapter (app.py) drains and draws them.
    """

    def __init__(
        self,
        service: TextService,
        *,
        steps: Optional[Sequence[Step]] = None,
        state: Optional[SessionState] = None,
        on_intent: Optional[Callable[[RenderIntent], None]] = None,
        thinking_delay: Optional[Tuple[float, float]] = None,
        choices_delay: Optional[float] = None,
        cancel_grace_sec: Optional[float] = None,
    ):
        self.service = service
        self.steps: Tuple[Step, ...] = tuple(steps) if steps is not None else STEPS
        self.state = state or create_session_state()
        self.intents: List[RenderIntent] = []
        self._on_intent = on_intent
        self._thinking_delay = thinking_delay
        self._choices_delay = choices_delay

        self.modals = ModalStack()
        self.free_input = FreeInputInterceptor(emit=self.emit)
        self.generation = GenerationTrigger(self, cancel_grace_sec=cancel_grace_sec)
        self.views = ArtifactViews()
        self.review: Optional[ReviewSession] = None
        self.last_audit: Optional[Dict[str, Any]] = None
        self.editing: Set[str] = set()
        self._results_scope: Optional[ModalScope] = None

        if self.state.artifacts is not None:
            self.views.render_all(self.state.artifacts)

    # -----------------------------
    # Intents
    # -----------------------------
    def emit(self, kind: str, **payload) -> RenderIntent:
        intent = RenderIntent(kind=kind, payload=payload)
        self.intents.append(intent)
        if self._on_intent is not None:
            self._on_intent(intent)
        return intent

    def drain_intents(self) -> List[RenderIntent]:
        out, self.intents = self.intents, []
        return out

    # -----------------------------
    # Read helpers
    # -----------------------------
    @property
    def cursor(self) -> int:
        return self.state.cursor

    @property
    def slots(self) -> SlotStore:
        return self.state.slots

    @property
    def current_step(self) -> Optional[Step]:
        if 0 <= self.state.cursor < len(self.steps):
            return self.steps[self.state.cursor]
        return None

    @property
    def results_open(self) -> bool:
        return self._results_scope is not None

    def progress(self) -> Tuple[int, int]:
        """(done, total) over the steps the current slots do not skip."""
        snapshot = self.slots.snapshot()
        done = total = 0
        for i, step in enumerate(self.steps):
            if step.should_skip(snapshot):
                continue
            total += 1
            if i <= self.state.cursor:
                done += 1
        return done, total

    # -----------------------------
    # Transcript
    # -----------------------------
    def add_ai_message(self, text: str, rich: Optional[bool] = None) -> TranscriptEntry:
        if rich is None:
            rich = is_rich_message(text)
        entry = self.state.transcript.append(ACTOR_AI, text, self.state.cursor, rich=rich)
        self.emit("message", entry=entry)
        return entry

    def add_user_message(self, text: str) -> TranscriptEntry:
        entry = self.state.transcript.append(ACTOR_USER, text, self.state.cursor)
        self.emit("message", entry=entry)
        return entry

    def update_message(self, entry_id: str, text: str) -> bool:
        updated = self.state.transcript.update(entry_id, text)
        if updated:
            self.emit("message_updated", id=entry_id, text=text)
        return updated

    def remove_message(self, entry_id: str) -> bool:
        removed = self.state.transcript.remove(entry_id)
        if removed:
            self.emit("message_removed", id=entry_id)
        return removed

    @asynccontextmanager
    async def loading_message(self, texts: Sequence[str], interval: float = 2.0):
        """Temporary AI message that cycles through `texts` and disappears on exit."""
        entry = self.add_ai_message(texts[0], rich=False)
        rotator = None
        if len(texts) > 1:
            rotator = asyncio.create_task(self._rotate(entry.id, texts[1:], interval))
        try:
            yield entry
        finally:
            if rotator is not None:
                rotator.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await rotator
            self.remove_message(entry.id)

    async def _rotate(self, entry_id: str, texts: Sequence[str], interval: float) -> None:
        for text in texts:
            await asyncio.sleep(interval)
            self.update_message(entry_id, text)

    def notify(self, text: str, level: str = "info") -> None:
        self.emit("notice", text=text, level=level)

    def report_provenance(self, result: ServiceResult) -> None:
        """Fallback content is a notice, never an error."""
        if not result.is_fallback:
            return
        if result.degraded:
            logger.info("serving degraded fallback (%s)", result.error_code)
            self.notify(FALLBACK_NOTICE, level="warning")
        else:
            self.notify(MOCK_NOTICE)

    # -----------------------------
    # Choices
    # -----------------------------
    def show_choices(self, choices: Sequence[Choice]) -> None:
        self.state.visible_choices = list(choices)
        back = BACK_LABEL if self.state.cursor > 0 else None
        self.emit("choices", choices=tuple(choices), back=back)

    def clear_choices(self) -> None:
        self.state.visible_choices = []
        self.emit("choices_cleared")

    def show_generate_affordance(self) -> None:
        self.state.visible_choices = []
        self.emit("generate_affordance", label=GENERATE_LABEL, back=GENERATE_BACK_LABEL)

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    def _thinking_seconds(self) -> float:
        low, high = self._thinking_delay if self._thinking_delay is not None else thinking_delay_range()
        return random.uniform(low, high) if high > 0 else 0.0

    # -----------------------------
    # Step sequencing
    # -----------------------------
    async def start(self) -> Optional[Step]:
        if self.state.cursor >= 0:
            return self.current_step
        logger.debug("session %s started", self.state.session_id)
        return await self.advance()

    async def advance(self) -> Optional[Step]:
        """
        Move to the next non-skipped step and render it.
        Past the last step this is a no-op and returns None.
        """
        snapshot = self.slots.snapshot()
        i = self.state.cursor + 1
        while i < len(self.steps) and self.steps[i].should_skip(snapshot):
            logger.debug("skip step %s", self.steps[i].id)
            i += 1
        if i >= len(self.steps):
            return None

        self.state.cursor = i
        step = self.steps[i]
        self.clear_choices()
        self.free_input.close()
        done, total = self.progress()
        self.emit("progress", done=done, total=total)

        message = step.render_message(snapshot)
        if message:
            self.emit("typing", on=True)
            await self._pause(self._thinking_seconds())
            self.emit("typing", on=False)
            self.add_ai_message(message)

        if step.is_generate_step:
            self.show_generate_affordance()
        elif step.choices:
            await self._pause(choices_delay() if self._choices_delay is None else self._choices_delay)
            self.show_choices(step.choices)
        return step

    async def select_choice(self, choice: Choice) -> bool:
        """Handle a click on one of the current step's choices. Ignored while any modal is open."""
        if not self.modals.accepts_input():
            logger.debug("choice %s ignored under modal %s", choice.value, self.modals.top.name)
            return False
        step = self.current_step
        if step is None:
            return False

        self.add_user_message(choice.label)
        self.clear_choices()

        if choice.value == OTHER_CHOICE_VALUE and step.allow_other:
            self.open_free_input(OTHER_PLACEHOLDER, partial(self._handle_other_text, step), step.choices)
            return True

        self.free_input.close()
        if step.slot:
            self.slots.set(step.slot, choice.value)
        if step.on_select is not None:
            proceed = await step.on_select(self, choice.value)
            if proceed is False:
                return True
        await self.advance()
        return True

    async def select(self, value: str) -> bool:
        """select_choice by value, looked up among the visible choices."""
        for c in self.state.visible_choices:
            if c.value == value:
                return await self.select_choice(c)
        raise KeyError(f"No visible choice with value {value!r}")

    async def _handle_other_text(self, step: Step, text: str) -> None:
        self.add_user_message(text)
        self.add_ai_message(OTHER_ACK)
        if step.slot:
            self.slots.set(step.slot, text, free_text=True)
        self.free_input.close()
        await self.advance()

    # -----------------------------
    # Backtracking
    # -----------------------------
    def previous_step_index(self) -> int:
        snapshot = self.slots.snapshot()
        target = self.state.cursor - 1
        while target > 0 and self.steps[target].should_skip(snapshot):
            target -= 1
        return max(0, target)

    async def go_to_previous_step(self) -> Optional[Step]:
        if not self.modals.accepts_input():
            return None
        target = self.previous_step_index()
        slot_keys: List[str] = []
        for s in self.steps[target:]:
            if s.slot:
                slot_keys.append(s.slot)
            slot_keys.extend(s.owned_slots)
        self.slots.clear(slot_keys)
        removed = self.state.transcript.truncate_from(target)
        self.emit("transcript_truncated", step=target, removed=removed)
        logger.debug("back to step %s (cleared %s)", self.steps[target].id, slot_keys)

        self.state.cursor = target - 1
        self.free_input.close()
        self.clear_choices()
        return await self.advance()

    # -----------------------------
    # Free input
    # -----------------------------
    def open_free_input(
        self,
        placeholder: str,
        handler: TextHandler,
        fallback_choices: Optional[Sequence[Choice]] = None,
        mode: str = MODE_INPUT,
    ) -> FreeInputSession:
        if fallback_choices is None:
            step = self.current_step
            fallback_choices = step.choices if step is not None else ()
        self.clear_choices()
        return self.free_input.open(placeholder, handler, fallback_choices, mode=mode)

    async def submit_free_input(self, text: str) -> bool:
        text = (text or "").strip()
        if not text or not self.free_input.is_open:
            return False
        if text in BACK_COMMANDS and not self.free_input.in_chat_mode:
            await self.go_to_previous_step()
            return True
        return await self.free_input.submit(text)

    def cancel_free_input(self) -> Tuple[Choice, ...]:
        fallback = self.free_input.cancel()
        if fallback:
            self.show_choices(fallback)
        return fallback

    # -----------------------------
    # Generation
    # -----------------------------
    async def generate(self) -> GenerationOutcome:
        if not self.modals.accepts_input():
            return GenerationOutcome.BUSY
        return await self.generation.run()

    def cancel_generation(self) -> bool:
        return self.generation.cancel()

    # -----------------------------
    # Results surface
    # -----------------------------
    def show_results(self) -> bool:
        artifacts = self.state.artifacts
        if artifacts is None:
            return False
        self.views.render_all(artifacts)
        if self._results_scope is None:
            self._results_scope = self.modals.enter(RESULTS_SCOPE)
        self.clear_choices()
        sections = [s.title for s in split_sections(artifacts.get("messages"))]
        self.emit(
            "results_opened",
            tabs=[(k, ARTIFACT_LABELS[k]) for k in ARTIFACT_KEYS],
            is_mock=self.state.is_mock,
            sections=sections,
        )
        return True

    def close_results(self) -> None:
        if self._results_scope is None:
            return
        if self.review is not None and self.review.phase != ReviewPhase.IDLE:
            self.review.skip()
        for tab in list(self.editing):
            self.cancel_edit(tab)
        self.modals.exit(self._results_scope)
        self._results_scope = None
        self.emit("results_closed")
        self.add_ai_message(COMPLETION_MESSAGE)
        self.emit("post_generation_actions", actions=POST_GENERATION_ACTIONS)

    def reopen_results(self) -> bool:
        if self.state.artifacts is None:
            return False
        logger.debug("results reopened")
        return self.show_results()

    def view(self, tab: str) -> str:
        v = self.views.get(tab)
        if v is None and self.state.artifacts is not None:
            v = self.views.render(tab, self.state.artifacts.get(tab))
        return v or ""

    # -----------------------------
    # Manual edit
    # -----------------------------
    def enable_edit(self, tab: str) -> Optional[str]:
        if self.state.artifacts is None:
            return None
        markdown = self.state.artifacts.get(tab)
        self.editing.add(tab)
        self.emit("edit_opened", tab=tab, markdown=markdown)
        return markdown

    def save_edit(self, tab: str, markdown: str) -> None:
        if self.state.artifacts is None:
            return
        self.state.artifacts.replace(tab, markdown)
        self.views.render(tab, self.state.artifacts.get(tab))
        self.editing.discard(tab)
        self.emit("view_updated", tab=tab)

    def cancel_edit(self, tab: str) -> None:
        if self.state.artifacts is None:
            return
        self.views.render(tab, self.state.artifacts.get(tab))
        self.editing.discard(tab)
        self.emit("view_updated", tab=tab)

    # -----------------------------
    # Expert review
    # -----------------------------
    def _review_session(self) -> ReviewSession:
        artifacts = self.state.artifacts
        if self.review is None or self.review.artifacts is not artifacts:
            self.review = ReviewSession(self.service, artifacts, self.views, modals=self.modals, emit=self.emit)
            self.review.reviewed_sections = self.state.reviewed_sections
        return self.review

    async def request_expert_review(self, section_index: int) -> Optional[ReviewPhase]:
        if self.state.artifacts is None:
            return None
        if self.review is not None and self.review.active:
            logger.debug("review request for section %d ignored: review %s", section_index, self.review.phase.value)
            return self.review.phase
        if not self.modals.accepts_input(RESULTS_SCOPE):
            return None
        return await self._review_session().request(section_index)

    # -----------------------------
    # Free chat
    # -----------------------------
    def enter_free_chat(self) -> FreeInputSession:
        self.clear_choices()
        self.add_ai_message(FREE_CHAT_INTRO)
        return self.free_input.open(FREE_CHAT_PLACEHOLDER, self._handle_chat, (), mode=MODE_CHAT)

    def _chat_excerpts(self) -> Dict[str, str]:
        artifacts = self.state.artifacts
        if artifacts is None:
            return {}
        return {k: artifacts.excerpt(k, CHAT_EXCERPT_CHARS) for k in ("plan", "funding")}

    async def _handle_chat(self, text: str) -> None:
        self.add_user_message(text)
        pending = self.add_ai_message(CHAT_PENDING)
        try:
            result = await self.service.chat(text, self.slots.to_dict(), self._chat_excerpts())
        except ServiceError as e:
            logger.warning("chat transport error: %s", e)
            self.remove_message(pending.id)
            self.add_ai_message(CHAT_NETWORK_ERROR)
            return

        self.remove_message(pending.id)
        if result.success and result.payload:
            self.add_ai_message(str(result.payload), rich=False)
        else:
            self.add_ai_message(CHAT_APOLOGY)

    # -----------------------------
    # Audit / improve
    # -----------------------------
    async def audit_results(self) -> Optional[Dict[str, Any]]:
        if self.state.artifacts is None:
            return None
        try:
            result = await self.service.audit(self.state.artifacts.to_dict())
        except ServiceError as e:
            logger.warning("audit transport error: %s", e)
            self.notify(AUDIT_FAILED, level="error")
            return None
        if not result.success or not isinstance(result.payload, dict):
            self.notify(AUDIT_FAILED, level="error")
            return None

        self.report_provenance(result)
        self.last_audit = result.payload
        self.emit("audit", audit=result.payload)
        return result.payload

    async def improve_artifact(self, tab: str, axis: str, comment: str = "") -> bool:
        if self.state.artifacts is None:
            return False
        content = self.state.artifacts.get(tab)
        try:
            result = await self.service.improve(tab, content, axis, comment)
        except ServiceError as e:
            logger.warning("improve transport error: %s", e)
            self.notify(IMPROVE_FAILED, level="error")
            return False
        if not result.success or not isinstance(result.payload, str) or not result.payload.strip():
            self.notify(IMPROVE_FAILED, level="error")
            return False

        self.state.artifacts.replace(tab, result.payload)
        self.views.render(tab, result.payload)
        self.report_provenance(result)
        self.emit("view_updated", tab=tab)
        return True
