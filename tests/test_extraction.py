import pytest

from engines.extraction import extract_json, parse_model_output
from errors import RAW_RESPONSE_LIMIT, ResponseParseError
from schemas import GeoGebraOutput


def test_fenced_json_block():
    assert extract_json('```json\n{"a":1}\n```') == {"a": 1}


def test_untagged_fence_is_accepted():
    assert extract_json('Hier:\n```\n{"a": [1, 2]}\n```\nFertig.') == {"a": [1, 2]}


def test_outer_braces_inside_prose():
    assert extract_json('noise {"a":1} trailing') == {"a": 1}


def test_whole_text_fallback():
    assert extract_json('  {"explanation": "ok"}  ') == {"explanation": "ok"}


def test_plain_text_raises_parse_error():
    with pytest.raises(ResponseParseError) as excinfo:
        extract_json("not json at all")

    assert excinfo.value.status_code == 500
    assert excinfo.value.to_payload() == {
        "success": False,
        "error": "Failed to parse AI response",
        "rawResponse": "not json at all",
    }


def test_raw_response_is_truncated():
    raw = "x" * (RAW_RESPONSE_LIMIT * 3)

    with pytest.raises(ResponseParseError) as excinfo:
        extract_json(raw)

    assert len(excinfo.value.raw_response) == RAW_RESPONSE_LIMIT


def test_greedy_brace_match_fails_on_two_separate_objects():
    # Known limitation: first "{" to last "}" spans both objects.
    with pytest.raises(ResponseParseError):
        extract_json('Erst {"a": 1} und dann {"b": 2}')


def test_json_arrays_are_not_objects():
    with pytest.raises(ResponseParseError):
        extract_json("[1, 2, 3]")


def test_parse_model_output_validates_shape():
    output = parse_model_output(
        '{"commands": ["f(x)=x^2"], "explanation": "Parabel", "interactionTips": ["Ziehe", "Zoome"]}',
        GeoGebraOutput,
    )

    assert output.commands == ["f(x)=x^2"]
    assert output.interaction_tips == "Ziehe Zoome"


def test_parse_model_output_rejects_wrong_shape():
    with pytest.raises(ResponseParseError) as excinfo:
        parse_model_output('{"explanation": "keine Befehle"}', GeoGebraOutput)

    assert excinfo.value.message == "AI response did not match the expected format"
    assert "keine Befehle" in excinfo.value.raw_response
