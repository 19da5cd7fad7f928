from __future__ import annotations

import html
import logging
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .text_service import ServiceError
from .types import ActivitySummary, Choice, SlotSnapshot, Step

logger = logging.getLogger(__name__)


SUMMARY_CARD_MARKER = '<div class="summary-card">'


# -----------------------------
# Display labels
# -----------------------------
TOPIC_LABELS = {
    "money": "お金のこと",
    "people": "人手のこと",
    "vague": "漠然とした不安",
}

RISK_LABELS = {
    "next_year_uncertain": "来年度が未確定",
    "cut_risk": "減額・打ち切りリスク",
    "self_funded": "自費で運営",
}

DEADLINE_LABELS = {
    "2-3w": "1か月以内",
    "1-2m": "1〜3か月",
    "3m+": "それ以上先",
    "まだ決まっていない": "まだ決まっていない",
}

GAP_LABELS = {
    "3万": "月5万円くらいまで",
    "5万": "月5万円くらいまで",
    "10万": "月10万円以上",
    "15万+": "月10万円以上",
    "まだ分からない": "まだ分からない",
}

ALLIES_LABELS = {
    "none": "具体的な協力なし",
    "small_support": "ちょこちょこ応援あり",
    "want_help": "協力者はいるが頼み方不明",
}

ACTIVITY_TYPE_LABELS = {
    "kodomo": "子ども・教育（居場所/学習支援）",
    "ibasho": "福祉・暮らし（高齢者/生活支援）",
    "event": "地域活動（イベント/交流/その他）",
    "welfare": "福祉/生活支援",
    "other_local": "その他の地域活動",
}

ACTIVITY_PLACE_LABELS = {
    "kominkan": "対面（公民館・教育施設など）",
    "school": "対面（公民館・教育施設など）",
    "online": "オンライン中心",
    "mixed": "両方（オンライン＋対面）",
    "other_place": "その他の場所",
}

ACTIVITY_FREQUENCY_LABELS = {
    "weekly": "週1回以上",
    "biweekly": "月1〜3回",
    "monthly": "月1〜3回",
    "irregular": "不定期・これから始める",
    "starting": "不定期・これから始める",
}

RISK_MESSAGES = {
    "money": "お金の不安、具体的に聞かせてください。\n今の状況に一番近いのはどれですか？",
    "people": "人手の課題、大変ですよね。\nお金まわりの状況も聞かせてください。",
    "vague": "「漠然と不安」って、一番相談しにくいやつですよね。\n今の状況に一番近いのはどれですか？",
}


def _label(labels: Dict[str, str], value: Any, default: str = "未定") -> str:
    if value is None or value == "":
        return default
    return labels.get(value, str(value))


# -----------------------------
# Summary cards (trusted markup, escaped values)
# -----------------------------
def render_summary_card(items: Sequence[Tuple[str, Any]], prefix: Optional[str] = None) -> str:
    lis = "".join(
        f"<li><strong>{html.escape(label)}：</strong>{html.escape(str(value or ''))}</li>"
        for label, value in items
    )
    card = f"{SUMMARY_CARD_MARKER}<ul>{lis}</ul></div>"
    return f"{prefix}\n\n{card}" if prefix else card


def is_rich_message(text: str) -> bool:
    return SUMMARY_CARD_MARKER in (text or "")


def build_summary_confirm_message(slots: SlotSnapshot, prefix: str = "サイトを読みました。こういう理解で合っていますか？") -> str:
    s = slots.get("activity_summary")
    if not s:
        return ""
    if isinstance(s, dict):
        s = ActivitySummary.from_dict(s)
    return render_summary_card(
        [
            ("📌 活動", s.activity),
            ("📍 場所", s.location),
            ("📅 ペース", s.schedule),
            ("👥 規模", s.participants),
            ("🏠 運営", s.operator),
            ("🕐 開始", s.started),
            ("💰 お金", s.funding),
        ],
        prefix,
    )


def build_manual_activity_card(slots: SlotSnapshot) -> str:
    return render_summary_card(
        [
            ("📌 活動タイプ", _label(ACTIVITY_TYPE_LABELS, slots.get("activity_type"))),
            ("📍 主な場所", _label(ACTIVITY_PLACE_LABELS, slots.get("activity_place"))),
            ("📅 開催頻度", _label(ACTIVITY_FREQUENCY_LABELS, slots.get("activity_frequency"))),
        ],
        "活動内容を確認しました。次に、いま気になっていることを聞かせてください。",
    )


def build_risk_type_message(slots: SlotSnapshot) -> str:
    return RISK_MESSAGES.get(slots.get("topic"), "現在の状況に一番近いのはどれですか？")


def build_generate_summary_message(slots: SlotSnapshot) -> str:
    topic = _label(TOPIC_LABELS, slots.get("topic"))
    risk = _label(RISK_LABELS, slots.get("risk_type"))
    return render_summary_card(
        [
            ("課題", f"{topic}（{risk}）"),
            ("スケジュール", _label(DEADLINE_LABELS, slots.get("deadline_window"))),
            ("余裕資金の目安", _label(GAP_LABELS, slots.get("gap_range"))),
            ("味方", _label(ALLIES_LABELS, slots.get("allies"))),
            ("方向性", "継続提案・資金複線化・体制づくり"),
        ],
        "ここまでの整理です 📋",
    )


# -----------------------------
# Skip predicates
# -----------------------------
def _no_summary(slots: SlotSnapshot) -> bool:
    return not slots.get("activity_summary")


def _not_manual(slots: SlotSnapshot) -> bool:
    return slots.get("source_mode") != "none"


# -----------------------------
# Intake copy
# -----------------------------
URL_PLACEHOLDER = "URLを入力してください"
PROFILE_PLACEHOLDER = "プロフィール文をペーストしてください"
CORRECTION_PLACEHOLDER = "修正点を教えてください"
OTHER_PLACEHOLDER = "自由に入力してください…"

OTHER_ACK = "ありがとう、受け取りました 👍"
CORRECTION_ACK = "ありがとうございます、反映しました！次に進みますね。"
INTAKE_NETWORK_ERROR = "通信エラーが発生しました。選択式で進めましょう。"

URL_LOADING = ("サイトを読みに行っています… 🔍", "内容を分析しています… 📖", "まとめています… ✨")
PROFILE_LOADING = ("プロフィールを読んでいます… 📖", "活動内容を分析しています… 🔍", "まとめています… ✨")
CORRECTION_LOADING = ("修正を反映しています… ✏️",)

URL_FALLBACK_CHOICES = (
    Choice("📋  SNSプロフィール文をコピペする", "sns", "A"),
    Choice("💬  選択式で教える", "none", "B"),
)
PROFILE_FALLBACK_CHOICES = (
    Choice("🔗  URLを入力する", "url", "A"),
    Choice("💬  選択式で教える", "none", "B"),
)
RECONFIRM_CHOICES = (
    Choice("✅  だいたい合っている", "confirmed", "A"),
    Choice("✏️  もう一度修正する", "edit", "B"),
)

# kind -> (service method, loading texts, failure copy, fallback choices, interval sec)
_INTAKE = {
    "url": (
        "summarize_url",
        URL_LOADING,
        "URLの読み取りがうまくいきませんでした。\nSNSプロフィール文をコピペするか、選択式で教えてください。",
        URL_FALLBACK_CHOICES,
        3.0,
    ),
    "sns": (
        "summarize_text",
        PROFILE_LOADING,
        "うまく読み取れませんでした。\n別の方法を試してみましょう。",
        PROFILE_FALLBACK_CHOICES,
        2.0,
    ),
}


# -----------------------------
# Hooks & free-input continuations
# -----------------------------
async def on_source_mode_selected(convo, value: str) -> bool:
    if value == "url":
        convo.open_free_input(URL_PLACEHOLDER, partial(handle_intake_text, convo, "url"))
        return False
    if value == "sns":
        convo.open_free_input(PROFILE_PLACEHOLDER, partial(handle_intake_text, convo, "sns"))
        return False
    convo.slots.set("activity_summary", None)
    return True


async def handle_intake_text(convo, kind: str, text: str) -> None:
    """URL or pasted profile -> activity summary, then continue the wizard."""
    method, loading, failure_copy, fallback, interval = _INTAKE[kind]
    convo.add_user_message(text)
    convo.free_input.close()

    try:
        async with convo.loading_message(loading, interval=interval):
            result = await getattr(convo.service, method)(text)
    except ServiceError as e:
        logger.warning("intake %s transport error: %s", kind, e)
        convo.add_ai_message(INTAKE_NETWORK_ERROR)
        convo.slots.set("activity_summary", None)
        convo.slots.set("source_mode", "none")
        await convo.advance()
        return

    if result.success and result.payload:
        convo.slots.set("activity_summary", ActivitySummary.from_dict(result.payload))
        convo.slots.set("source_mode", kind)
        convo.report_provenance(result)
        await convo.advance()
        return

    logger.info("intake %s failed: %s", kind, result.error_code)
    convo.add_ai_message(failure_copy)
    convo.show_choices(fallback)


async def on_summary_confirm_selected(convo, value: str) -> bool:
    if value != "edit":
        return True
    convo.open_free_input(CORRECTION_PLACEHOLDER, partial(handle_summary_correction, convo))
    return False


async def handle_summary_correction(convo, text: str) -> None:
    convo.add_user_message(text)
    convo.free_input.close()

    current = convo.slots.get("activity_summary")
    current_dict = current.to_dict() if isinstance(current, ActivitySummary) else dict(current or {})

    try:
        async with convo.loading_message(CORRECTION_LOADING):
            result = await convo.service.update_summary(current_dict, text)
    except ServiceError as e:
        logger.warning("summary correction transport error: %s", e)
        convo.add_ai_message(CORRECTION_ACK)
        await convo.advance()
        return

    if result.success and result.payload:
        convo.slots.set("activity_summary", ActivitySummary.from_dict(result.payload))
        card = build_summary_confirm_message(convo.slots.snapshot(), prefix="")
        convo.add_ai_message("修正しました！こちらで合っていますか？\n\n" + card)
        convo.show_choices(RECONFIRM_CHOICES)
        return

    convo.add_ai_message(CORRECTION_ACK)
    await convo.advance()


# -----------------------------
# Script
# -----------------------------
OTHER_CHOICE_LABEL = "✏️  その他（自由に書く）"


def build_steps() -> List[Step]:
    return [
        Step(
            id="source_mode",
            message="こんにちは！😊\nまず、あなたの活動のことを少しだけ教えてください。\n私（AI）に伝えるのに、どの方法がやりやすいですか？",
            choices=(
                Choice("🔗  活動のWebサイト・ブログのURLを入れる", "url", "A"),
                Choice("📋  SNSプロフィール文をコピペする", "sns", "B"),
                Choice("💬  どちらもない → 選択式で教える", "none", "C"),
            ),
            slot="source_mode",
            owned_slots=("activity_summary",),
            on_select=on_source_mode_selected,
        ),
        Step(
            id="summary_confirm",
            dynamic_message=build_summary_confirm_message,
            choices=(
                Choice("✅  だいたい合っている", "confirmed", "A"),
                Choice("✏️  修正したいところがある", "edit", "B"),
            ),
            skip=_no_summary,
            on_select=on_summary_confirm_selected,
        ),
        Step(
            id="activity_type",
            message="選択式で進める場合、最初に活動のことを教えてください。\nいちばん近いものはどれですか？",
            choices=(
                Choice("👦  子ども・教育（居場所/学習支援）", "kodomo", "A"),
                Choice("🏠  福祉・暮らし（高齢者/生活支援）", "ibasho", "B"),
                Choice("🌱  地域活動（イベント/交流/その他）", "event", "C"),
            ),
            slot="activity_type",
            skip=_not_manual,
        ),
        Step(
            id="activity_place",
            message="活動場所はどこが近いですか？",
            choices=(
                Choice("🏢  対面（公民館・教育施設など）", "kominkan", "A"),
                Choice("💻  オンライン中心", "online", "B"),
                Choice("🔁  両方（オンライン＋対面）", "mixed", "C"),
            ),
            slot="activity_place",
            skip=_not_manual,
        ),
        Step(
            id="activity_frequency",
            message="活動頻度はどれが近いですか？",
            choices=(
                Choice("📅  週1回以上", "weekly", "A"),
                Choice("🗓️  月1〜3回", "biweekly", "B"),
                Choice("🌱  不定期・これから始める", "irregular", "C"),
            ),
            slot="activity_frequency",
            skip=_not_manual,
        ),
        Step(
            id="activity_confirm",
            dynamic_message=build_manual_activity_card,
            choices=(Choice("✅  この内容で次へ進む", "ok", "A"),),
            skip=_not_manual,
        ),
        Step(
            id="topic",
            message="ありがとうございます 🙏\n今日はどんなことが気になっていますか？",
            choices=(
                Choice("💰  お金のこと（活動費・資金）", "money", "A"),
                Choice("🤝  人手のこと（一人で回してる）", "people", "B"),
                Choice("☁️  この先続けられるか漠然と不安", "vague", "C"),
            ),
            slot="topic",
        ),
        Step(
            id="risk_type",
            dynamic_message=build_risk_type_message,
            choices=(
                Choice("📅  今年度は大丈夫。でも来年が読めない", "next_year_uncertain", "A"),
                Choice("⚠️  減額・打ち切りの話が出ている", "cut_risk", "B"),
                Choice("💳  公的支援なしで自費でやっている", "self_funded", "C"),
            ),
            slot="risk_type",
        ),
        Step(
            id="deadline_window",
            message="手続きや相談のスケジュールがあれば教えてください 📆\nざっくりでOKです",
            choices=(
                Choice("⏰  1か月以内", "2-3w", "A"),
                Choice("🗓️  1〜3か月", "1-2m", "B"),
                Choice("❓  それ以上先 / まだ決まっていない", "3m+", "C"),
            ),
            slot="deadline_window",
        ),
        Step(
            id="gap_range",
            message="これだけあったら活動にもう少し余裕が出るな、という金額感はどれに近いですか？\n仮置きでOKです 💡",
            choices=(
                Choice("💴  月5万円くらいまで", "3万", "A"),
                Choice("💰  月10万円以上", "10万", "B"),
                Choice("❓  まだ分からない", "まだ分からない", "C"),
            ),
            slot="gap_range",
        ),
        Step(
            id="allies",
            message="あなたの活動を応援してくれている人はいますか？ 🌱\n周りからのサポート状況で、次の打ち手が変わります。",
            choices=(
                Choice("😐  協力はあまりない", "none", "A"),
                Choice("🎁  ちょこちょこ応援がある", "small_support", "B"),
                Choice("🙋  頼みたい人はいるが巻き込めていない", "want_help", "C"),
                Choice(OTHER_CHOICE_LABEL, "other", "D"),
            ),
            slot="allies",
            allow_other=True,
        ),
        Step(
            id="intent",
            message="あと少しです！\nこの活動、これからどうしていきたいですか？",
            choices=(
                Choice("💪  続けたい", "continue", "A"),
                Choice("🌿  無理しない範囲で", "continue_light", "B"),
                Choice("🤝  引き継ぎも視野に", "handover", "C"),
                Choice(OTHER_CHOICE_LABEL, "other", "D"),
            ),
            slot="intent",
            allow_other=True,
        ),
        Step(
            id="desired_output",
            message="ありがとうございます ✨\nここまでの情報で、お渡しできるものがあります。\nまず一番ほしいのはどれですか？",
            choices=(
                Choice("💰  お金の作り方（協賛・寄付）", "A", "A"),
                Choice("🗣️  まわりへの頼み方・巻き込み方", "B", "B"),
                Choice("📦  全部まとめて出してほしい", "C", "C"),
            ),
            slot="desired_output",
        ),
        Step(
            id="summary_generate",
            dynamic_message=build_generate_summary_message,
            is_generate_step=True,
        ),
    ]


STEPS: Tuple[Step, ...] = tuple(build_steps())


def step_index(step_id: str, steps: Sequence[Step] = STEPS) -> int:
    for i, s in enumerate(steps):
        if s.id == step_id:
            return i
    raise KeyError(step_id)
