"""AI text capability used by quiz assembly, scoring feedback and progression advice.

Quiz generation is the only operation that can fail the caller: a malformed
result raises ``UpstreamGenerationError``. Explanation, analysis and
recommendation never raise; on any failure they log and return fixed
fallback text.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import UpstreamFeedbackError, UpstreamGenerationError
from .gemini_client import GeminiClient


logger = logging.getLogger(__name__)

SYSTEM_CONSTRAINT = (
    "Use ONLY the provided vocabulary, kanji, and grammar. "
    "Do NOT introduce new Japanese words or cultural concepts."
)

QUIZ_QUESTION_COUNT = 5
QUIZ_OPTION_COUNT = 4

EXPLANATION_FALLBACK = "Keep practicing! You're making progress."
ANALYSIS_FALLBACK_STRENGTHS = ["You're making steady progress!"]
ANALYSIS_FALLBACK_WEAK_AREAS = ["Continue practicing the areas you found challenging."]
RECOMMENDATION_FALLBACK = "Keep up the great work! Continue practicing and you'll see improvement."


@dataclass
class GeneratedQuestion:
    question_text: str
    options: List[str]
    correct_answer: str


@dataclass
class PerformanceAnalysis:
    strengths: List[str] = field(default_factory=list)
    weak_areas: List[str] = field(default_factory=list)

    @classmethod
    def fallback(cls) -> "PerformanceAnalysis":
        return cls(list(ANALYSIS_FALLBACK_STRENGTHS), list(ANALYSIS_FALLBACK_WEAK_AREAS))


def _truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _log_ai_response(operation: str, prompt: str, response: str, **metadata: Any) -> None:
    logger.info(
        "AI %s prompt=%r response=%r metadata=%s",
        operation,
        _truncate(prompt),
        _truncate(response),
        metadata,
    )


def extract_json(text: str) -> Any:
    """Parse a JSON value from model output, tolerating markdown fences and chatter."""
    try:
        return json.loads(text)
    except ValueError:
        pass
    code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if code_block:
        try:
            return json.loads(code_block.group(1))
        except ValueError:
            pass
    for opener, closer in (("[", "]"), ("{", "}")):
        first = text.find(opener)
        last = text.rfind(closer)
        if first != -1 and last > first:
            try:
                return json.loads(text[first : last + 1])
            except ValueError:
                continue
    raise ValueError("model output did not contain valid JSON")


def validate_generated_questions(data: Any, count: int = QUIZ_QUESTION_COUNT) -> List[GeneratedQuestion]:
    if not isinstance(data, list) or len(data) != count:
        raise UpstreamGenerationError(f"AI did not return exactly {count} questions")
    questions: List[GeneratedQuestion] = []
    for i, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise UpstreamGenerationError(f"Invalid question structure from AI (question {i})")
        text = item.get("question_text")
        options = item.get("options")
        correct = item.get("correct_answer")
        if (
            not isinstance(text, str)
            or not text.strip()
            or not isinstance(options, list)
            or len(options) != QUIZ_OPTION_COUNT
            or not isinstance(correct, str)
            or not correct
        ):
            raise UpstreamGenerationError(f"Invalid question structure from AI (question {i})")
        questions.append(GeneratedQuestion(text.strip(), [str(o) for o in options], correct))
    return questions


def _question_format(level_title: str) -> str:
    if "beginner" in level_title.lower():
        return (
            "- Questions must be in ENGLISH asking about Japanese words/concepts\n"
            "- Options must be in JAPANESE\n"
            "- Example: \"What is the Japanese word for 'dog'?\" with options like \"犬\", \"猫\", \"鳥\", \"魚\""
        )
    return (
        "- Questions can be in Japanese or English as appropriate for the level\n"
        "- Mix of Japanese and English in questions and answers"
    )


class AiTextService:
    """Prompting and parsing on top of a single ``_complete`` primitive.

    Subclasses must override ``_complete``; the base version raises
    ``NotImplementedError``, which every public method treats as an upstream
    failure. Everything else is shared.
    """

    async def _complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 500,
    ) -> str:
        raise NotImplementedError

    async def generate_quiz_questions(
        self,
        level_title: str,
        module_title: str,
        allowed_content: Sequence[str],
        count: int = QUIZ_QUESTION_COUNT,
    ) -> List[GeneratedQuestion]:
        content_list = "\n".join(allowed_content)
        prompt = f"""{SYSTEM_CONSTRAINT}

You are a Japanese language learning quiz generator. Generate exactly {count} multiple-choice questions based ONLY on the following content.

Level: {level_title}
Module: {module_title}

Allowed Content:
{content_list}

Requirements:
- Generate exactly {count} questions
- Each question must have {QUIZ_OPTION_COUNT} options
{_question_format(level_title)}
- Only use vocabulary, kanji, and grammar from the allowed content above
- Make questions clear and educational
- Ensure one option is clearly correct and that correct_answer repeats it exactly
- Return a JSON array with this exact structure:
[
  {{"question_text": "What is the Japanese word for 'dog'?", "options": ["犬", "猫", "鳥", "魚"], "correct_answer": "犬"}}
]

Return ONLY valid JSON, no additional text."""
        try:
            raw = await self._complete(prompt, temperature=0.7, max_output_tokens=2000)
        except Exception as exc:
            _log_ai_response("generate_quiz_questions", prompt, f"ERROR: {exc}", level=level_title, module=module_title)
            raise UpstreamGenerationError("Failed to generate quiz questions") from exc
        _log_ai_response("generate_quiz_questions", prompt, raw, level=level_title, module=module_title)
        try:
            data = extract_json(raw)
        except ValueError as exc:
            raise UpstreamGenerationError("AI returned a quiz that is not valid JSON") from exc
        return validate_generated_questions(data, count)

    async def explain_answer(
        self,
        level_title: str,
        question: str,
        user_answer: Optional[str],
        correct_answer: str,
        allowed_content: Sequence[str],
    ) -> str:
        content_list = "\n".join(allowed_content)
        prompt = f"""{SYSTEM_CONSTRAINT}

You are a supportive Japanese language tutor. Provide a short, encouraging explanation for why the student's answer was incorrect.

Level: {level_title}
Question: {question}
Student's Answer: {user_answer if user_answer is not None else "(no answer)"}
Correct Answer: {correct_answer}

Allowed Content (use only these):
{content_list}

Requirements:
- Keep explanation to 2-3 sentences
- Be encouraging and supportive
- Explain why the correct answer is right
- The explanation MUST be written in ENGLISH, even if the question or answers are in Japanese.

Provide only the explanation text, no additional formatting."""
        try:
            text = (await self._complete(prompt, temperature=0.7, max_output_tokens=200)).strip()
            if not text:
                raise UpstreamFeedbackError("empty explanation")
        except Exception as exc:
            self._recover("explain_answer", prompt, exc, level=level_title)
            return EXPLANATION_FALLBACK
        _log_ai_response("explain_answer", prompt, text, level=level_title, question=question[:50])
        return text

    async def analyze_performance(
        self,
        level_title: str,
        scores: Sequence[Dict[str, Any]],
        incorrect_summary: str,
    ) -> PerformanceAnalysis:
        scores_text = "\n".join(f"{s['module']}: {s['score'] * 100:.0f}%" for s in scores)
        prompt = f"""{SYSTEM_CONSTRAINT}

You are a Japanese language learning analyst. Analyze the student's performance and identify strengths and weak areas.

Level: {level_title}

Module Scores:
{scores_text}

Incorrect Answers Summary:
{incorrect_summary}

Requirements:
- Identify 2-3 key strengths
- Identify 2-3 weak areas that need improvement
- Be specific but encouraging
- Return a JSON object with this exact structure:
{{"strengths": ["Strength 1", "Strength 2"], "weakAreas": ["Weak area 1", "Weak area 2"]}}

Return ONLY valid JSON, no additional text."""
        try:
            raw = await self._complete(prompt, temperature=0.7, max_output_tokens=500)
            data = extract_json(raw)
            strengths = data.get("strengths") if isinstance(data, dict) else None
            weak_areas = data.get("weakAreas") if isinstance(data, dict) else None
            if not isinstance(strengths, list) or not isinstance(weak_areas, list):
                raise UpstreamFeedbackError("Invalid analysis structure from AI")
        except Exception as exc:
            self._recover("analyze_performance", prompt, exc, level=level_title)
            return PerformanceAnalysis.fallback()
        _log_ai_response("analyze_performance", prompt, raw, level=level_title)
        return PerformanceAnalysis([str(s) for s in strengths], [str(w) for w in weak_areas])

    async def recommend_next_steps(self, level_title: str, summary: str, weak_areas: Sequence[str]) -> str:
        prompt = f"""{SYSTEM_CONSTRAINT}

You are a motivational Japanese language learning coach. Write a 3-5 sentence summary encouraging the student and recommending next steps.

Level: {level_title}

Performance Summary:
{summary}

Areas to Focus On:
{", ".join(weak_areas)}

Requirements:
- Write 3-5 sentences
- Be motivational and encouraging
- Suggest specific next steps based on weak areas
- Do NOT introduce new Japanese words or concepts

Provide only the recommendation text, no additional formatting."""
        try:
            text = (await self._complete(prompt, temperature=0.8, max_output_tokens=300)).strip()
            if not text:
                raise UpstreamFeedbackError("empty recommendation")
        except Exception as exc:
            self._recover("recommend_next_steps", prompt, exc, level=level_title)
            return RECOMMENDATION_FALLBACK
        _log_ai_response("recommend_next_steps", prompt, text, level=level_title)
        return text

    def _recover(self, operation: str, prompt: str, exc: Exception, **metadata: Any) -> None:
        logger.warning("AI %s failed, using fallback text: %s", operation, exc)
        _log_ai_response(operation, prompt, f"ERROR: {exc}", **metadata)


class GeminiTextService(AiTextService):
    def __init__(self, client_factory: Callable[[], GeminiClient] = GeminiClient) -> None:
        self._client_factory = client_factory

    async def _complete(self, prompt: str, *, temperature: float = 0.7, max_output_tokens: int = 500) -> str:
        # A missing API key raises here and is handled like any other upstream failure
        async with self._client_factory() as client:
            return await client.generate(
                prompt,
                system=SYSTEM_CONSTRAINT,
                temperature=temperature,
                max_output_tokens=max_output_tokens,
            )


def get_ai_service() -> AiTextService:
    return GeminiTextService()
