import json

import pytest
from hypothesis import given, strategies as st

from questionqc.errors import MalformedResponse
from questionqc.verdict_decoder import decode_analyzer_text, extract_json_text, sanitize_escapes


def test_plain_json_passes_through():
    assert decode_analyzer_text('{"a": 1, "b": [true, null]}') == {"a": 1, "b": [True, None]}


def test_strips_json_code_fence():
    raw = '```json\n{"boundedness": "B2"}\n```'
    assert decode_analyzer_text(raw) == {"boundedness": "B2"}


def test_extracts_object_from_surrounding_chatter():
    raw = 'Here is the analysis you asked for:\n{"primary_bloom_level": 4}\nHope this helps!'
    assert extract_json_text(raw) == '{"primary_bloom_level": 4}'
    assert decode_analyzer_text(raw) == {"primary_bloom_level": 4}


def test_top_level_array_is_left_alone():
    assert decode_analyzer_text("[1, 2]") == [1, 2]


@pytest.mark.parametrize("command", ["frac", "binom", "newline", "rho", "text"])
def test_overloaded_escape_followed_by_letters_is_latex(command):
    raw = '{"q": "Simplify \\' + command + '{1}{2}"}'
    assert decode_analyzer_text(raw) == {"q": "Simplify \\" + command + "{1}{2}"}


@pytest.mark.parametrize("command", ["sqrt", "log", "int", "sum", "alpha", "cdot"])
def test_non_escape_letters_are_latex(command):
    raw = '{"q": "\\' + command + ' x"}'
    assert decode_analyzer_text(raw) == {"q": "\\" + command + " x"}


def test_real_escapes_survive():
    raw = '{"q": "line one\\n2. tab\\t! quote \\" slash \\/ back \\\\ end\\n"}'
    assert decode_analyzer_text(raw) == {"q": 'line one\n2. tab\t! quote " slash / back \\ end\n'}


def test_unicode_escape_is_kept():
    assert decode_analyzer_text('{"q": "caf\\u00e9 \\u2264 3"}') == {"q": "café ≤ 3"}


def test_backslashes_outside_strings_are_untouched():
    text = '{"a": "\\frac"}'
    assert sanitize_escapes(text) == '{"a": "\\\\frac"}'


def test_trailing_backslash_in_unterminated_string_is_doubled():
    assert sanitize_escapes('"abc\\') == '"abc\\\\'


def test_mixed_math_and_escapes():
    raw = '{"before": "Find \\frac{a}{b} when\\n b \\neq 0 and \\sqrt{a} > 1"}'
    decoded = decode_analyzer_text(raw)
    assert decoded["before"] == "Find \\frac{a}{b} when\n b \\neq 0 and \\sqrt{a} > 1"


def test_garbage_raises_malformed_with_raw_text():
    with pytest.raises(MalformedResponse) as exc:
        decode_analyzer_text("the model refused to answer")
    assert exc.value.raw_text == "the model refused to answer"


def test_truncated_object_raises_malformed():
    with pytest.raises(MalformedResponse):
        decode_analyzer_text('{"primary_bloom_level": 4, "hots": {"flag": tr')


_plain_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc"), blacklist_characters="\\"),
    max_size=40,
)


@given(st.dictionaries(_plain_text, st.one_of(_plain_text, st.integers(), st.booleans(), st.none()), max_size=8))
def test_decoding_notation_free_json_matches_json_loads(payload):
    raw = json.dumps(payload)
    assert decode_analyzer_text(raw) == json.loads(raw)
