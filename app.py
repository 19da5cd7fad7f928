import asyncio
import logging
import os
import threading
import time

import streamlit as st

from moyamoya.core import service
from moyamoya.core.constants import ARTIFACT_KEYS, ARTIFACT_LABELS, AUDIT_AXES
from moyamoya.core.generation import PROGRESS_SUB, PROGRESS_TEXTS
from moyamoya.core.mock_data import AXIS_LABELS
from moyamoya.core.transcript import ACTOR_AI, render_entry_html
from moyamoya.review.engine import ReviewPhase
from moyamoya.review.sections import split_sections
from moyamoya.review.track_changes import escape_view_text

SHOW_DEBUG = os.getenv("SHOW_DEBUG", "0") == "1"

logging.basicConfig(
    level=logging.DEBUG if SHOW_DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# MUST be first Streamlit call
st.set_page_config(
    page_title="モヤモヤキャッチャー",
    layout="centered",
    initial_sidebar_state="collapsed",
)

# ---------- CSS (SAFE) ----------
st.markdown(
    """
<style>
.block-container { padding-top: 1.0rem; max-width: 820px; }

.summary-card {
  background: rgba(255,255,255,0.65);
  border: 1px solid rgba(0,0,0,0.08);
  border-radius: 14px;
  padding: 10px 14px;
  margin-top: 6px;
}
.summary-card ul { margin: 0; padding-left: 1rem; }

.redline-deleted { text-decoration: line-through; color: #b00020; background: rgba(176,0,32,0.08); }
.redline-inserted { color: #0b6e4f; background: rgba(11,110,79,0.10); font-weight: 600; }
.review-applied-note {
  border-left: 3px solid #0b6e4f;
  padding: 4px 10px;
  color: #0b6e4f;
  font-size: 0.9rem;
}

.moya-progress { color: rgba(0,0,0,0.55); font-size: 0.85rem; text-align: right; }
</style>
""",
    unsafe_allow_html=True,
)

st.markdown("## 🎯 モヤモヤキャッチャー")
st.caption("漠然とした不安を、具体的な次の一手に変える")


# ---------- Helpers ----------
def _engine_loop():
    """One event loop per browser session, alive across script reruns."""
    loop = st.session_state.get("loop")
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        threading.Thread(target=loop.run_forever, daemon=True).start()
        st.session_state["loop"] = loop
    return loop


def _run(coro):
    """Short engine calls: wait for the result inside this script run."""
    return asyncio.run_coroutine_threadsafe(coro, _engine_loop()).result()


def _init_session():
    convo = service.create_conversation(thinking_delay=(0.0, 0.0), choices_delay=0.0)
    st.session_state["convo"] = convo
    st.session_state["toasts"] = []
    st.session_state.pop("generation", None)
    _run(convo.start())


def _after_action(convo):
    for intent in convo.drain_intents():
        if intent.kind == "notice":
            st.session_state["toasts"].append(intent.payload.get("text", ""))
        elif intent.kind == "review_failed":
            st.session_state["toasts"].append(intent.payload.get("message", ""))
    service.persist(convo)
    st.rerun()


# ---------- Session init ----------
if "convo" not in st.session_state:
    _init_session()

convo = st.session_state["convo"]

for t in st.session_state.get("toasts", []):
    if t:
        st.toast(t)
st.session_state["toasts"] = []

# ---------- Sidebar ----------
with st.sidebar:
    if SHOW_DEBUG:
        st.header("Status")
        st.write(f"**USE_LLM:** `{os.getenv('USE_LLM','0')}`")
        st.write(f"**Session:** `{convo.state.session_id}`")
        st.write(f"**Step:** `{convo.current_step.id if convo.current_step else '-'}`")
        st.json(convo.slots.to_dict())
        st.divider()

    if st.button("最初からやり直す", type="primary"):
        _init_session()
        st.rerun()

    if convo.state.artifacts is not None:
        c1, c2 = st.columns(2)
        with c1:
            if st.button("DOCX出力"):
                service.persist(convo)
                res = service.export(convo.state.session_id, fmt="docx")
                st.success(f"DOCX: {res['path']}")
        with c2:
            if st.button("TXT出力"):
                service.persist(convo)
                res = service.export(convo.state.session_id, fmt="txt")
                st.success(f"TXT: {res['path']}")


# ---------- Results surface ----------
def _render_review(convo):
    review = convo.review
    if review is None or review.phase == ReviewPhase.IDLE:
        return

    st.markdown("---")
    reviewer = review.reviewer
    if review.phase == ReviewPhase.LOADING:
        st.info(f"「{review.section_title}」を確認しています…")
        return

    if reviewer is not None:
        st.markdown(
            f"**{escape_view_text(reviewer.avatar)} {escape_view_text(reviewer.persona)}**"
            f"（{escape_view_text(reviewer.role)}）"
        )
        for c in reviewer.comments:
            st.caption(escape_view_text(c))

    if review.phase == ReviewPhase.REVIEWING:
        s = review.current_suggestion
        st.markdown(f"**提案 {review.index + 1}/{len(review.suggestions)}** ・ {ARTIFACT_LABELS.get(s.tab, s.tab)}")
        st.caption(escape_view_text(s.reason))
        st.markdown(f'<span class="redline-deleted">{escape_view_text(s.before)}</span>', unsafe_allow_html=True)
        st.markdown(f'<span class="redline-inserted">{escape_view_text(s.after)}</span>', unsafe_allow_html=True)
        a, r = st.columns(2)
        if a.button("✅ 採用する", key=f"accept-{review.index}"):
            review.accept()
            _after_action(convo)
        if r.button("❌ 元のまま", key=f"reject-{review.index}"):
            review.reject()
            _after_action(convo)
        alt = st.text_input("別の案を書く", key=f"alt-{review.index}")
        b1, b2 = st.columns(2)
        if b1.button("この案で反映", key=f"alt-apply-{review.index}"):
            review.alternative(alt)
            _after_action(convo)
        if b2.button("レビューを終える", key=f"skip-{review.index}"):
            review.skip()
            _after_action(convo)

    elif review.phase == ReviewPhase.COMPLETE:
        st.info(review.summary().message())
        if st.button("確定して反映する", type="primary"):
            review.finalize()
            _after_action(convo)


def _render_results(convo):
    artifacts = convo.state.artifacts
    if convo.state.is_mock:
        st.warning("サンプル内容を表示しています（AIの応答ではありません）")

    tabs = st.tabs([ARTIFACT_LABELS[k] for k in ARTIFACT_KEYS])
    for tab, key in zip(tabs, ARTIFACT_KEYS):
        with tab:
            if key in convo.editing:
                edited = st.text_area("Markdown", value=artifacts.get(key), height=420, key=f"edit-{key}")
                s1, s2 = st.columns(2)
                if s1.button("💾 保存する", key=f"save-{key}"):
                    convo.save_edit(key, edited)
                    _after_action(convo)
                if s2.button("✕ キャンセル", key=f"cancel-{key}"):
                    convo.cancel_edit(key)
                    _after_action(convo)
                continue

            st.markdown(convo.view(key), unsafe_allow_html=True)
            if st.button("✏️ 編集する", key=f"enable-{key}"):
                convo.enable_edit(key)
                _after_action(convo)

            if key == "messages":
                busy = convo.review is not None and convo.review.active
                for sec in split_sections(artifacts.get("messages")):
                    done = convo.review is not None and convo.review.is_reviewed(sec.index)
                    label = f"🔍 「{sec.title}」を受け手目線でチェック" + (" ✓" if done else "")
                    if st.button(label, key=f"review-{sec.index}", disabled=done or busy):
                        _run(convo.request_expert_review(sec.index))
                        _after_action(convo)

    _render_review(convo)

    st.markdown("---")
    q1, q2 = st.columns(2)
    if q1.button("📊 品質チェック"):
        _run(convo.audit_results())
        _after_action(convo)
    if q2.button("閉じる", type="primary"):
        convo.close_results()
        _after_action(convo)

    if convo.last_audit:
        for key in ARTIFACT_KEYS:
            entry = convo.last_audit.get(key) or {}
            scores = entry.get("scores") or {}
            cols = st.columns(len(AUDIT_AXES) + 1)
            cols[0].markdown(f"**{ARTIFACT_LABELS[key]}**")
            for col, axis in zip(cols[1:], AUDIT_AXES):
                mark = scores.get(axis, "△")
                col.write(f"{AXIS_LABELS.get(axis, axis)} {mark}")
                if mark == "△" and col.button("改善", key=f"improve-{key}-{axis}"):
                    comment = (entry.get("comments") or {}).get(axis, "")
                    _run(convo.improve_artifact(key, axis, comment))
                    _after_action(convo)


# ---------- Chat ----------
done, total = convo.progress()
st.markdown(f'<div class="moya-progress">{done}/{total}</div>', unsafe_allow_html=True)

for entry in convo.state.transcript:
    role = "assistant" if entry.actor == ACTOR_AI else "user"
    with st.chat_message(role, avatar="🎯" if role == "assistant" else None):
        st.markdown(render_entry_html(entry), unsafe_allow_html=True)

pending = st.session_state.get("generation")
if pending is not None:
    if pending.done():
        st.session_state.pop("generation", None)
        pending.result()
        _after_action(convo)

    progress = PROGRESS_TEXTS[0]
    for intent in reversed(list(convo.intents)):
        if intent.kind in ("generation_started", "generation_progress"):
            progress = intent.payload.get("text", progress)
            break
    with st.status(progress, expanded=True):
        st.caption(PROGRESS_SUB)
        if convo.generation.cancel_available and st.button("✕ キャンセル", key="cancel-generation"):
            _engine_loop().call_soon_threadsafe(convo.cancel_generation)
    time.sleep(1)
    st.rerun()

if convo.results_open:
    _render_results(convo)
    st.stop()

step = convo.current_step

if convo.free_input.is_open:
    session = convo.free_input.active
    text = st.chat_input(session.placeholder)
    if session.fallback_choices and st.button("✕ 選択肢に戻る"):
        convo.cancel_free_input()
        _after_action(convo)
    if text:
        _run(convo.submit_free_input(text))
        _after_action(convo)

elif step is not None and step.is_generate_step and convo.state.artifacts is None:
    if st.button("✨ 生成する", type="primary"):
        # runs on the session loop so later reruns can offer cancel
        st.session_state["generation"] = asyncio.run_coroutine_threadsafe(convo.generate(), _engine_loop())
        st.rerun()
    if st.button("← 戻って修正する"):
        _run(convo.go_to_previous_step())
        _after_action(convo)

elif convo.state.artifacts is not None and not convo.state.visible_choices:
    r1, r2 = st.columns(2)
    if r1.button("📋 結果をもう一度見る", type="primary"):
        convo.reopen_results()
        _after_action(convo)
    if r2.button("💬 もっと聞く（雑談・質問）"):
        convo.enter_free_chat()
        _after_action(convo)

else:
    for c in convo.state.visible_choices:
        if st.button(f"{c.letter}  {c.label}", key=f"choice-{convo.cursor}-{c.value}"):
            _run(convo.select_choice(c))
            _after_action(convo)
    if convo.state.visible_choices and convo.cursor > 0:
        if st.button("← ひとつ前に戻る"):
            _run(convo.go_to_previous_step())
            _after_action(convo)
