# Slot keys, in the order the wizard fills them

SLOT_KEYS = [
    "source_mode",
    "activity_summary",
    "activity_type",
    "activity_place",
    "activity_frequency",
    "topic",
    "risk_type",
    "deadline_window",
    "gap_range",
    "allies",
    "intent",
    "desired_output",
]

# None => unconstrained (composite record / free text)
SLOT_DOMAINS = {
    "source_mode": {"url", "sns", "none"},
    "activity_summary": None,
    "activity_type": {"kodomo", "ibasho", "event", "welfare", "other_local"},
    "activity_place": {"kominkan", "online", "mixed", "school", "other_place"},
    "activity_frequency": {"weekly", "biweekly", "irregular", "monthly", "starting"},
    "topic": {"money", "people", "vague"},
    "risk_type": {"next_year_uncertain", "cut_risk", "self_funded"},
    "deadline_window": {"2-3w", "1-2m", "3m+", "まだ決まっていない"},
    "gap_range": {"3万", "5万", "10万", "15万+", "まだ分からない"},
    "allies": {"none", "small_support", "want_help", "other"},
    "intent": {"continue", "continue_light", "handover", "other"},
    "desired_output": {"A", "B", "C", "D"},
}

SUMMARY_FIELDS = [
    "activity",
    "location",
    "schedule",
    "participants",
    "operator",
    "started",
    "funding",
]

ARTIFACT_KEYS = ["profile", "plan", "funding", "messages"]

ARTIFACT_LABELS = {
    "profile": "活動紹介",
    "plan": "90日プラン",
    "funding": "資金計画",
    "messages": "声かけ文",
}

AUDIT_AXES = ["action", "motivation", "barrier", "urgency"]

# Reserved choice value that opens free text instead of filling the slot directly
OTHER_CHOICE_VALUE = "other"

# Typed into the free-input field, these go back one step
BACK_COMMANDS = ("戻る", "ひとつ前に戻る")

SOURCE_LLM = "llm"
SOURCE_MOCK = "mock"
SOURCE_FALLBACK = "mock-fallback"
