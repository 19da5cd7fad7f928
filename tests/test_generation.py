import asyncio
import threading
import time

import pytest

from moyamoya.core.constants import ARTIFACT_KEYS, SOURCE_FALLBACK
from moyamoya.core.flow import COMPLETION_MESSAGE, FALLBACK_NOTICE, Conversation
from moyamoya.core.generation import (
    CANCELLED_MESSAGE,
    FAILED_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    GenerationOutcome,
)
from moyamoya.core.generator import placeholder_outputs
from moyamoya.core.text_service import ServiceError
from moyamoya.core.types import ServiceResult

from tests.conftest import MANUAL_PATH, ai_texts, walk


async def _at_generate_step(convo):
    await convo.start()
    await walk(convo, *MANUAL_PATH)
    assert convo.current_step.is_generate_step


async def _wait_in_flight(convo):
    for _ in range(20):
        if convo.generation.in_flight:
            return
        await asyncio.sleep(0)
    raise AssertionError("generation never started")


@pytest.mark.asyncio
async def test_generate_success_stores_artifacts_and_opens_results(convo, fake_service):
    await _at_generate_step(convo)

    outcome = await convo.generate()

    assert outcome is GenerationOutcome.SUCCEEDED
    sent = fake_service.called("generate_artifacts")[0][0]
    assert sent["topic"] == "money"
    assert sent["desired_output"] == "C"
    assert convo.state.artifacts.to_dict() == placeholder_outputs()
    assert convo.results_open
    assert convo.modals.top.name == "results"
    assert all(convo.views.get(k) is not None for k in ARTIFACT_KEYS)
    assert not convo.generation.in_flight


@pytest.mark.asyncio
async def test_generate_failure_is_a_transcript_entry(convo, fake_service):
    fake_service.results["generate_artifacts"] = ServiceResult(success=False, error_code="UPSTREAM_ERROR")
    await _at_generate_step(convo)

    outcome = await convo.generate()

    assert outcome is GenerationOutcome.FAILED
    assert ai_texts(convo)[-1] == FAILED_MESSAGE
    assert convo.state.artifacts is None
    assert convo.modals.depth == 0
    # still retryable
    assert any(i.kind == "generate_affordance" for i in convo.drain_intents()[-3:])


@pytest.mark.asyncio
async def test_generate_transport_error_reports_network(convo, fake_service):
    fake_service.results["generate_artifacts"] = ServiceError("offline")
    await _at_generate_step(convo)

    outcome = await convo.generate()

    assert outcome is GenerationOutcome.FAILED
    assert ai_texts(convo)[-1] == NETWORK_ERROR_MESSAGE
    assert convo.state.artifacts is None


@pytest.mark.asyncio
async def test_cancel_mid_generation(convo, fake_service):
    fake_service.gate = asyncio.Event()
    await _at_generate_step(convo)

    task = asyncio.create_task(convo.generate())
    await _wait_in_flight(convo)
    assert convo.cancel_generation()
    outcome = await task

    texts = ai_texts(convo)
    assert outcome is GenerationOutcome.CANCELLED
    assert texts.count(CANCELLED_MESSAGE) == 1
    assert NETWORK_ERROR_MESSAGE not in texts
    assert FAILED_MESSAGE not in texts
    assert convo.state.artifacts is None
    assert convo.modals.depth == 0


@pytest.mark.asyncio
async def test_cancel_is_offered_after_grace_period(fake_service):
    convo = Conversation(fake_service, thinking_delay=(0.0, 0.0), choices_delay=0.0, cancel_grace_sec=0.01)
    fake_service.gate = asyncio.Event()
    await _at_generate_step(convo)

    task = asyncio.create_task(convo.generate())
    await _wait_in_flight(convo)
    assert not convo.generation.cancel_available

    await asyncio.sleep(0.05)
    assert convo.generation.cancel_available
    assert any(i.kind == "generation_cancel_available" for i in convo.intents)

    fake_service.gate.set()
    assert await task is GenerationOutcome.SUCCEEDED
    assert not convo.generation.cancel_available


@pytest.mark.asyncio
async def test_second_generate_while_in_flight_is_busy(convo, fake_service):
    fake_service.gate = asyncio.Event()
    await _at_generate_step(convo)

    task = asyncio.create_task(convo.generate())
    await _wait_in_flight(convo)
    assert await convo.generation.run() is GenerationOutcome.BUSY

    fake_service.gate.set()
    await task
    assert len(fake_service.called("generate_artifacts")) == 1


@pytest.mark.asyncio
async def test_degraded_generation_is_a_notice_not_an_error(convo, fake_service):
    fake_service.results["generate_artifacts"] = ServiceResult(
        success=True, source=SOURCE_FALLBACK, degraded=True, payload=placeholder_outputs()
    )
    await _at_generate_step(convo)

    assert await convo.generate() is GenerationOutcome.SUCCEEDED
    assert convo.state.is_mock
    notices = [i.payload["text"] for i in convo.intents if i.kind == "notice"]
    assert FALLBACK_NOTICE in notices


@pytest.mark.asyncio
async def test_close_and_reopen_results(convo):
    await _at_generate_step(convo)
    await convo.generate()

    convo.close_results()
    assert not convo.results_open
    assert ai_texts(convo)[-1] == COMPLETION_MESSAGE
    assert convo.intents[-1].kind == "post_generation_actions"

    assert convo.reopen_results()
    assert convo.results_open


@pytest.mark.asyncio
async def test_manual_edit_save_and_cancel(convo):
    await _at_generate_step(convo)
    await convo.generate()

    md = convo.enable_edit("plan")
    assert md == placeholder_outputs()["plan"]
    convo.save_edit("plan", "## 新しいプラン\n\n- A & B <すぐ>")

    assert convo.state.artifacts.get("plan") == "## 新しいプラン\n\n- A & B <すぐ>"
    assert "A &amp; B &lt;すぐ>" in convo.view("plan")
    assert "plan" not in convo.editing

    convo.enable_edit("profile")
    convo.cancel_edit("profile")
    assert convo.state.artifacts.get("profile") == placeholder_outputs()["profile"]


@pytest.mark.asyncio
async def test_free_chat_keeps_input_open(convo, fake_service):
    await _at_generate_step(convo)
    await convo.generate()
    convo.close_results()

    convo.enter_free_chat()
    assert convo.free_input.in_chat_mode

    await convo.submit_free_input("助成金の探し方を教えて")
    # back words are plain chat text in chat mode
    await convo.submit_free_input("戻る")

    calls = fake_service.called("chat")
    assert [c[0] for c in calls] == ["助成金の探し方を教えて", "戻る"]
    assert set(calls[0][2]) == {"plan", "funding"}
    assert all(len(v) <= 500 for v in calls[0][2].values())
    assert ai_texts(convo)[-1] == "reply: 戻る"
    assert "考え中…" not in ai_texts(convo)
    assert convo.free_input.is_open


@pytest.mark.asyncio
async def test_free_chat_failure_apologises(convo, fake_service):
    fake_service.results["chat"] = ServiceError("offline")
    await _at_generate_step(convo)
    await convo.generate()
    convo.close_results()
    convo.enter_free_chat()

    await convo.submit_free_input("質問です")

    assert ai_texts(convo)[-1] == "通信エラーが発生しました。"
    assert convo.free_input.is_open


@pytest.mark.asyncio
async def test_audit_and_improve(convo):
    await _at_generate_step(convo)
    await convo.generate()

    audit = await convo.audit_results()
    assert audit["plan"]["scores"]["urgency"] == "△"

    assert await convo.improve_artifact("plan", "urgency", audit["plan"]["comments"]["urgency"])
    assert convo.state.artifacts.get("plan").endswith("（改善済み）")
    assert "（改善済み）" in convo.view("plan")


@pytest.mark.asyncio
async def test_improve_failure_leaves_artifact(convo, fake_service):
    fake_service.results["improve"] = ServiceResult(success=False, error_code="UPSTREAM_ERROR")
    await _at_generate_step(convo)
    await convo.generate()

    assert not await convo.improve_artifact("plan", "urgency")
    assert convo.state.artifacts.get("plan") == placeholder_outputs()["plan"]


def test_cancel_from_ui_thread_while_loop_runs_generation(fake_service):
    convo = Conversation(fake_service, thinking_delay=(0.0, 0.0), choices_delay=0.0, cancel_grace_sec=0.01)
    fake_service.gate = asyncio.Event()
    loop = asyncio.new_event_loop()
    worker = threading.Thread(target=loop.run_forever, daemon=True)
    worker.start()
    try:
        asyncio.run_coroutine_threadsafe(_at_generate_step(convo), loop).result(timeout=5)
        future = asyncio.run_coroutine_threadsafe(convo.generate(), loop)

        deadline = time.monotonic() + 5
        while not convo.generation.cancel_available:
            assert time.monotonic() < deadline, "cancel never offered"
            time.sleep(0.01)
        loop.call_soon_threadsafe(convo.cancel_generation)

        assert future.result(timeout=5) is GenerationOutcome.CANCELLED
        assert ai_texts(convo).count(CANCELLED_MESSAGE) == 1
        assert convo.modals.depth == 0
    finally:
        loop.call_soon_threadsafe(loop.stop)
        worker.join(timeout=5)
        loop.close()
