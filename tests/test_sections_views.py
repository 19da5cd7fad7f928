from moyamoya.core.artifacts import ArtifactSet
from moyamoya.core.mock_data import MOCK_MESSAGES
from moyamoya.review.sections import get_section, split_sections, to_plain_text
from moyamoya.review.track_changes import (
    MARK_ESCAPED,
    MARK_MISS,
    MARK_NOTE,
    MARK_VERBATIM,
    ArtifactViews,
    escape_view_text,
    has_track_changes,
    render_view,
)


def test_messages_split_into_titled_sections():
    sections = split_sections(MOCK_MESSAGES)

    assert [s.title for s in sections] == [
        "📄 自治体向け：継続提案メール",
        "🏢 企業向け：協賛依頼メール",
        "📱 地域向け：寄付・協力募集（SNS投稿案）",
    ]
    assert [s.index for s in sections] == [0, 1, 2]
    assert "###" not in sections[1].body
    assert "件名：子どもの居場所づくりへのご協賛のお願い" in sections[1].text
    assert "**" not in sections[1].text
    assert not sections[1].text.startswith(">")


def test_get_section_out_of_range():
    assert get_section(MOCK_MESSAGES, 3) is None
    assert get_section(MOCK_MESSAGES, -1) is None
    assert get_section("", 0) is None
    assert get_section(MOCK_MESSAGES, 2).title.startswith("📱")


def test_plain_text_strips_markdown():
    md = "## 見出し\n\n> **件名：ご相談**\n- 項目A\n\n\n\n本文"

    assert to_plain_text(md) == "見出し\n\n件名：ご相談\n・項目A\n\n本文"


def _views(markdown):
    views = ArtifactViews()
    views.render("plan", markdown)
    return views


def test_mark_change_verbatim():
    views = _views("毎週水曜に開催")

    assert views.mark_change("plan", "水曜", "木曜", source_changed=True) == MARK_VERBATIM
    view = views.get("plan")
    assert '<span class="redline-deleted">水曜</span>' in view
    assert '<span class="redline-inserted">木曜</span>' in view


def test_mark_change_escaped_before():
    views = _views("寄付 & 協賛を募る")

    assert views.mark_change("plan", "寄付 & 協賛", "<寄付>", source_changed=True) == MARK_ESCAPED
    view = views.get("plan")
    assert "寄付 &amp; 協賛</span>" in view
    assert "&lt;寄付>" in view
    assert "<寄付>" not in view


def test_mark_change_note_when_only_source_matched():
    views = _views("- 地域の人\n  とつながる")

    outcome = views.mark_change("plan", "地域の人 とつながる", "地域とつながる", source_changed=True)

    assert outcome == MARK_NOTE
    assert views.get("plan").startswith('<p class="review-applied-note">✍️ 反映: 地域とつながる</p>')


def test_mark_change_miss_leaves_view():
    views = _views("本文")

    assert views.mark_change("plan", "ない文", "x", source_changed=False) == MARK_MISS
    assert views.mark_change("plan", "", "x", source_changed=True) == MARK_MISS
    assert views.mark_change("funding", "本文", "x", source_changed=True) == MARK_MISS
    assert views.get("plan") == "本文"


def test_render_all_clears_marks():
    artifacts = ArtifactSet({"plan": "毎週水曜に開催", "profile": "<b>紹介</b>"})
    views = ArtifactViews()
    views.render_all(artifacts)
    views.mark_change("plan", "水曜", "木曜", source_changed=True)
    assert has_track_changes(views.get("plan"))

    views.render_all(artifacts)

    assert not has_track_changes(views.get("plan"))
    assert views.get("profile") == render_view("<b>紹介</b>") == "&lt;b>紹介&lt;/b>"
    assert views.get("messages") == ""


def test_reviewer_and_suggestion_text_is_escaped_for_html():
    persona = '<img src=x onerror="alert(1)">社長'
    before = "</span><script>steal()</script>"

    assert "<img" not in escape_view_text(persona)
    assert escape_view_text(persona).endswith("社長")
    markup = f'<span class="redline-deleted">{escape_view_text(before)}</span>'
    assert markup.count("<span") == 1
    assert markup.count("</span>") == 1
    assert "<script>" not in markup
    assert escape_view_text(None) == ""
