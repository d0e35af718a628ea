import asyncio
import json

import httpx
import pytest

from rejap.ai_service import (
    ANALYSIS_FALLBACK_WEAK_AREAS,
    EXPLANATION_FALLBACK,
    SYSTEM_CONSTRAINT,
    AiTextService,
    GeminiTextService,
    extract_json,
    validate_generated_questions,
)
from rejap.errors import UpstreamGenerationError
from rejap.gemini_client import GeminiClient
from rejap.settings import settings


def _question(text="What is 'dog'?", options=("犬", "猫", "鳥", "魚"), answer="犬"):
    return {"question_text": text, "options": list(options), "correct_answer": answer}


class ScriptedAi(AiTextService):
    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    async def _complete(self, prompt, *, temperature=0.7, max_output_tokens=500):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_extract_json_handles_fences_and_chatter():
    assert extract_json('[{"a": 1}]') == [{"a": 1}]
    assert extract_json('```json\n{"strengths": []}\n```') == {"strengths": []}
    assert extract_json('Here you go: [1, 2, 3] hope that helps') == [1, 2, 3]
    with pytest.raises(ValueError):
        extract_json("no json here")


def test_validation_requires_exact_shape():
    questions = validate_generated_questions([_question() for _ in range(5)])
    assert len(questions) == 5
    assert questions[0].correct_answer == "犬"

    with pytest.raises(UpstreamGenerationError):
        validate_generated_questions([_question() for _ in range(4)])
    with pytest.raises(UpstreamGenerationError):
        validate_generated_questions([_question()] * 4 + [_question(options=("犬", "猫", "鳥"))])
    with pytest.raises(UpstreamGenerationError):
        validate_generated_questions([_question()] * 4 + [_question(text="  ")])
    with pytest.raises(UpstreamGenerationError):
        validate_generated_questions({"questions": [_question()] * 5})


def test_generation_parses_fenced_output_and_constrains_prompt():
    ai = ScriptedAi("```json\n" + json.dumps([_question() for _ in range(5)], ensure_ascii=False) + "\n```")
    questions = asyncio.run(ai.generate_quiz_questions("Beginner", "Basic Vocabulary", ["いぬ: dog"]))
    assert len(questions) == 5
    prompt = ai.prompts[0]
    assert prompt.startswith(SYSTEM_CONSTRAINT)
    assert "いぬ: dog" in prompt
    assert "Options must be in JAPANESE" in prompt


def test_generation_failures_raise():
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(ScriptedAi("not json").generate_quiz_questions("Beginner", "m", []))
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(ScriptedAi(RuntimeError("timeout")).generate_quiz_questions("Beginner", "m", []))


def test_explanation_falls_back_on_error_or_empty_text():
    assert asyncio.run(ScriptedAi(RuntimeError("boom")).explain_answer("Beginner", "q", "a", "b", [])) == EXPLANATION_FALLBACK
    assert asyncio.run(ScriptedAi("   ").explain_answer("Beginner", "q", None, "b", [])) == EXPLANATION_FALLBACK
    assert asyncio.run(ScriptedAi(" Nice try. ").explain_answer("Beginner", "q", "a", "b", [])) == "Nice try."


def test_analysis_reads_json_or_falls_back():
    good = ScriptedAi('{"strengths": ["Kanji"], "weakAreas": ["Particles"]}')
    analysis = asyncio.run(good.analyze_performance("Beginner", [{"module": "Basic Vocabulary", "score": 0.8}], ""))
    assert analysis.strengths == ["Kanji"]
    assert analysis.weak_areas == ["Particles"]
    assert "Basic Vocabulary: 80%" in good.prompts[0]

    bad = ScriptedAi('{"strengths": "Kanji"}')
    fallback = asyncio.run(bad.analyze_performance("Beginner", [], ""))
    assert fallback.weak_areas == ANALYSIS_FALLBACK_WEAK_AREAS


@pytest.fixture
def ai_studio(monkeypatch):
    monkeypatch.setattr(settings, "gemini_provider", "ai_studio")
    monkeypatch.setattr(settings, "openrouter_api_key", None)


def test_gemini_client_posts_prompt_and_reads_text(ai_studio):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.url.params.get("key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "こんにちは"}]}}]})

    async def run():
        async with GeminiClient("test-key", transport=httpx.MockTransport(handler)) as client:
            return await client.generate("hello", system="be brief", temperature=0.2, max_output_tokens=50)

    assert asyncio.run(run()) == "こんにちは"
    assert seen["key"] == "test-key"
    assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be brief"}]}
    assert seen["body"]["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 50}


def test_gemini_client_raises_without_fallback(ai_studio):
    transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "unavailable"}))

    async def run():
        async with GeminiClient("test-key", transport=transport) as client:
            return await client.generate("hello")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(run())


def test_gemini_client_falls_back_to_openrouter(ai_studio, monkeypatch):
    monkeypatch.setattr(settings, "openrouter_api_key", "or-key")

    def handler(request: httpx.Request) -> httpx.Response:
        if "openrouter" in request.url.host:
            assert request.headers["Authorization"] == "Bearer or-key"
            return httpx.Response(200, json={"choices": [{"message": {"content": "fallback text"}}]})
        return httpx.Response(500)

    async def run():
        async with GeminiClient("test-key", transport=httpx.MockTransport(handler)) as client:
            return await client.generate("hello", system="sys")

    assert asyncio.run(run()) == "fallback text"


def test_gemini_client_requires_a_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    with pytest.raises(ValueError):
        GeminiClient()


def test_missing_key_turns_into_fallback_text(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    text = asyncio.run(GeminiTextService().explain_answer("Beginner", "q", "a", "b", []))
    assert text == EXPLANATION_FALLBACK


def test_base_service_without_completion_hook_uses_fallbacks():
    base = AiTextService()
    assert asyncio.run(base.explain_answer("Beginner", "q", "a", "b", [])) == EXPLANATION_FALLBACK
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(base.generate_quiz_questions("Beginner", "m", []))
