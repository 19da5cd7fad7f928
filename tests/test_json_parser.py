import pytest

from moyamoya.llm.json_parser import JSONParseError, parse_json_strict


@pytest.mark.parametrize(
    "raw",
    [
        '{"a": 1, "b": "x"}',
        '```json\n{"a": 1, "b": "x"}\n```',
        '```\n{"a": 1, "b": "x"}\n```',
        'はい、結果です。\n{"a": 1, "b": "x"}\n以上です。',
        '{"a": 1, "b": "x",}',
    ],
)
def test_parses_common_model_shapes(raw):
    assert parse_json_strict(raw) == {"a": 1, "b": "x"}


def test_repairs_python_literals():
    data = parse_json_strict('結果: {"ok": True, "missing": None, "score": .5}')

    assert data == {"ok": True, "missing": None, "score": 0.5}


def test_braces_inside_strings():
    data = parse_json_strict('note {"before": "a } b", "after": "{x}"} trailing')

    assert data == {"before": "a } b", "after": "{x}"}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", '{"a": ', "[1, 2]"])
def test_rejects_unusable_output(raw):
    with pytest.raises(JSONParseError):
        parse_json_strict(raw)
