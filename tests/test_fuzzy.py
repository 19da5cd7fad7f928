from moyamoya.core.artifacts import ArtifactSet
from moyamoya.review.fuzzy import replace_once_flexible


def test_exact_match_replaces_only_that_occurrence():
    source = "前文。\n- 手伝ってくれる人を2人みつける — 声をかける\n後文。"
    changed, text = replace_once_flexible(source, "手伝ってくれる人を2人みつける", "協力者を2人みつける")

    assert changed
    assert text == "前文。\n- 協力者を2人みつける — 声をかける\n後文。"


def test_only_first_of_several_occurrences_is_replaced():
    changed, text = replace_once_flexible("AB AB AB", "AB", "X")

    assert changed
    assert text == "X AB AB"


def test_whitespace_run_tolerance():
    source = "- 地元企業\n  数社にメールを送る"
    changed, text = replace_once_flexible(source, "地元企業 数社にメールを送る", "企業3社にメールを送る")

    assert changed
    assert text == "- 企業3社にメールを送る"


def test_embedded_break_tolerance():
    source = "**手伝ってくれる人を2人\nみつける** — 保護者に声をかける"
    changed, text = replace_once_flexible(source, "手伝ってくれる人を2人みつける", "協力者を見つける")

    assert changed
    assert text == "**協力者を見つける** — 保護者に声をかける"


def test_miss_leaves_source_untouched():
    source = "何も一致しない本文"
    changed, text = replace_once_flexible(source, "存在しない", "x")

    assert not changed
    assert text == source


def test_empty_inputs():
    assert replace_once_flexible("", "a", "b") == (False, "")
    assert replace_once_flexible("abc", "", "b") == (False, "abc")
    assert replace_once_flexible("a b", "   ", "x") == (False, "a b")


def test_replacement_is_literal():
    changed, text = replace_once_flexible("price: 100  yen", "100 yen", r"\1 $0 \g<0>")

    assert changed
    assert text == r"price: \1 $0 \g<0>"


def test_regex_metacharacters_in_before():
    changed, text = replace_once_flexible("月額(3,000円)+税\nです", "月額(3,000円)+税 です", "月額3,300円です")

    assert changed
    assert text == "月額3,300円です"


def test_artifact_set_apply_edit():
    artifacts = ArtifactSet({"plan": "- A\n- B"})

    assert artifacts.apply_edit("plan", "- B", "- C")
    assert artifacts.get("plan") == "- A\n- C"
    assert not artifacts.apply_edit("plan", "- Z", "- Y")
    assert artifacts.get("plan") == "- A\n- C"
    assert artifacts.get("profile") == ""
