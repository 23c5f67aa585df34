import json

import httpx
import pytest

from questionqc.analyzer_client import QualityAnalyzerClient, build_analysis_prompt
from questionqc.errors import MalformedResponse, ProviderFailure, QuestionRejected
from questionqc.settings import AnalyzerConfig
from questionqc.verdict import QuestionSnapshot

from conftest import good_report


QUESTION = QuestionSnapshot(
    source="bank",
    question_id="q1",
    question_text="Explain why \\frac{1}{2} + \\frac{1}{3} is not \\frac{2}{5}.",
    question_type="ESSAY",
    teacher_difficulty="MEDIUM",
    teacher_hots_claim=True,
    subject_name="Matematika",
    grade_band="SMP",
)


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler, **config):
    values = {"api_key": "test-key"}
    values.update(config)
    return QualityAnalyzerClient(AnalyzerConfig(**values), transport=httpx.MockTransport(handler))


async def test_analyze_decodes_fenced_report_with_latex():
    seen = {}

    def handler(request):
        seen["request"] = request
        report = json.dumps(good_report(suggested_edits=[{"goal": "improve_clarity", "after": "\\frac{5}{6}"}]))
        # the model forgets to escape LaTeX backslashes
        text = "```json\n" + report.replace("\\\\frac", "\\frac") + "\n```"
        return httpx.Response(200, json=gemini_reply(text))

    client = make_client(handler)
    verdict = await client.analyze(QUESTION)
    await client.aclose()

    assert verdict.boundedness == "B2"
    assert verdict.primary_bloom_level == 4
    assert verdict.suggested_edits[0].after == "\\frac{5}{6}"
    request = seen["request"]
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["generationConfig"]["temperature"] == 0.2
    assert "Explain why" in body["contents"][0]["parts"][0]["text"]


async def test_vertex_sends_key_in_header():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json=gemini_reply(json.dumps(good_report())))

    client = make_client(handler, provider="vertex", vertex_project="proj")
    await client.analyze(QUESTION)
    await client.aclose()

    request = seen["request"]
    assert request.headers["x-goog-api-key"] == "test-key"
    assert "key" not in request.url.params
    assert "/projects/proj/locations/us-central1/" in str(request.url)


async def test_missing_key_is_a_provider_failure():
    client = QualityAnalyzerClient(AnalyzerConfig(api_key=None))
    with pytest.raises(ProviderFailure):
        await client.analyze(QUESTION)
    await client.aclose()


async def test_short_question_is_rejected_without_a_call():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=gemini_reply("{}"))

    client = make_client(handler)
    with pytest.raises(QuestionRejected):
        await client.analyze(QUESTION.model_copy(update={"question_text": "  2+2?  "}))
    await client.aclose()
    assert calls == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="internal"),
        httpx.Response(429, text="quota"),
        httpx.Response(200, content=b""),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"candidates": []}),
        httpx.Response(200, json=gemini_reply("   ")),
    ],
)
async def test_unusable_replies_are_provider_failures(response):
    client = make_client(lambda request: response)
    with pytest.raises(ProviderFailure):
        await client.analyze(QUESTION)
    await client.aclose()


async def test_network_error_is_a_provider_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(ProviderFailure):
        await client.analyze(QUESTION)
    await client.aclose()


@pytest.mark.parametrize("text", ["I cannot help with that.", "[1, 2, 3]"])
async def test_undecodable_report_is_malformed(text):
    client = make_client(lambda request: httpx.Response(200, json=gemini_reply(text)))
    with pytest.raises(MalformedResponse) as exc:
        await client.analyze(QUESTION)
    await client.aclose()
    assert exc.value.raw_text == text


def test_prompt_carries_question_context():
    prompt = build_analysis_prompt(QUESTION.model_copy(update={"options": ["A", "B"], "correct_answer": "A"}))
    assert "Grade Band: SMP" in prompt
    assert "Reading Limit for this grade: 300 words" in prompt
    assert "Teacher HOTS Claim: Yes" in prompt
    assert '- Options: ["A", "B"]' in prompt
    assert "- Correct Answer: A" in prompt
