import pytest

from moyamoya.core.artifacts import ArtifactSet
from moyamoya.core.generator import placeholder_outputs
from moyamoya.core.state import (
    SlotStore,
    SlotValueError,
    create_session_state,
    load_session,
    save_session,
)
from moyamoya.core.types import ActivitySummary

from tests.conftest import walk


def test_slot_domain_enforced():
    slots = SlotStore()

    slots.set("topic", "money")
    assert slots["topic"] == "money"

    with pytest.raises(SlotValueError):
        slots.set("topic", "weather")
    with pytest.raises(KeyError):
        slots.set("favourite_colour", "blue")


def test_free_text_and_summary_bypass_domain():
    slots = SlotStore()

    slots.set("allies", "近所の人", free_text=True)
    slots.set("activity_summary", ActivitySummary(activity="よりみち"))

    assert slots["allies"] == "近所の人"
    assert slots.to_dict()["activity_summary"]["activity"] == "よりみち"


def test_clear_and_snapshot_are_independent():
    slots = SlotStore({"topic": "money", "risk_type": "cut_risk", "unknown": 1})
    snap = slots.snapshot()

    slots.clear(["topic", "not_a_slot"])

    assert slots["topic"] is None
    assert slots["risk_type"] == "cut_risk"
    assert snap["topic"] == "money"
    assert "unknown" not in slots
    with pytest.raises(TypeError):
        snap["topic"] = "people"


@pytest.mark.asyncio
async def test_session_round_trip(tmp_path, convo):
    await convo.start()
    await convo.select("url")
    await convo.submit_free_input("https://example.org")
    convo.state.artifacts = ArtifactSet(placeholder_outputs())
    convo.state.reviewed_sections = [2]

    path = save_session(convo.state, data_dir=str(tmp_path))
    loaded = load_session(convo.state.session_id, data_dir=str(tmp_path))

    assert path.endswith(f"{convo.state.session_id}.json")
    assert loaded.cursor == convo.cursor
    assert isinstance(loaded.slots["activity_summary"], ActivitySummary)
    assert loaded.slots.to_dict() == convo.slots.to_dict()
    assert [e.text for e in loaded.transcript] == [e.text for e in convo.state.transcript]
    assert [e.rich for e in loaded.transcript] == [e.rich for e in convo.state.transcript]
    assert loaded.visible_choices == convo.state.visible_choices
    assert loaded.artifacts.to_dict() == placeholder_outputs()
    assert loaded.reviewed_sections == [2]


def test_load_missing_session(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_session("nope", data_dir=str(tmp_path))


@pytest.mark.asyncio
async def test_resumed_transcript_keeps_unique_ids(tmp_path, convo):
    await convo.start()
    await walk(convo, "none", "kodomo")
    save_session(convo.state, data_dir=str(tmp_path))

    loaded = load_session(convo.state.session_id, data_dir=str(tmp_path))
    new = loaded.transcript.append("ai", "next", loaded.cursor)

    assert [e.id for e in loaded.transcript].count(new.id) == 1


def test_new_session_state_defaults():
    state = create_session_state()

    assert state.cursor == -1
    assert all(v is None for v in state.slots.to_dict().values())
    assert state.artifacts is None
