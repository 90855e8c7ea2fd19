import json
import logging
import re
from typing import Any

from errors import UpstreamError

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are an expert interview analyst. Provide detailed, constructive feedback "
    "based on the interview transcript."
)


def format_transcript(turns: list) -> str:
    """Render final, non-empty turns as ``ROLE: text`` lines."""
    lines = []
    for turn in turns:
        if not isinstance(turn, dict):
            continue
        text = turn.get("text")
        if not text or not turn.get("final"):
            continue
        role = str(turn.get("role") or "unknown").upper()
        lines.append(f"{role}: {text}")
    return "\n".join(lines)


def build_analysis_prompt(transcript_text: str) -> str:
    return f"""Analyze this interview transcript and provide a detailed assessment. The transcript is a list of messages, one per line, prefixed with the speaker's role.

Transcript:
{transcript_text}

Strictly respond with a JSON object using this format:
{{
  "score": number (0-100),
  "strengths": string[],
  "improvements": string[],
  "feedback": string,
  "recommendations": string[]
}}

Do not include any explanations or text outside the JSON block.

Guidelines for scoring and feedback:
1. Score should reflect overall performance (0-100)
2. List 3-5 key strengths
3. List 3-5 areas for improvement
4. Provide detailed feedback about communication, technical knowledge, and problem-solving abilities
5. Give 3-5 specific recommendations for improvement"""


def parse_analysis_json(text: str) -> dict[str, Any]:
    text = (text or "").strip()
    # Strip markdown code fences if present
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.endswith("```"):
            text = text[:-3]
        elif "```" in text:
            text = text[:text.rfind("```")]
    text = text.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, re.DOTALL)
        if not match:
            raise
        data = json.loads(match.group())
    if not isinstance(data, dict):
        raise ValueError("Analysis response is not a JSON object")
    return data


class InterviewAnalyzer:
    def __init__(self, client, model: str = "gemini-2.5-flash-lite"):
        self.client = client
        self.model = model

    @classmethod
    def from_api_key(cls, api_key: str, model: str = "gemini-2.5-flash-lite"):
        from google import genai

        return cls(genai.Client(api_key=api_key), model=model)

    async def analyze(self, turns: list) -> dict[str, Any]:
        prompt = build_analysis_prompt(format_transcript(turns))
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config={
                    "system_instruction": SYSTEM_INSTRUCTION,
                    "temperature": 0.7,
                    "max_output_tokens": 2000,
                    "response_mime_type": "application/json",
                },
            )
            logger.debug("Analysis response: %s", response.text)
            return parse_analysis_json(response.text)
        except Exception as e:
            logger.error("Error analyzing interview: %s", e)
            raise UpstreamError(f"Failed to analyze interview: {e}")


def render_report(analysis: dict[str, Any]) -> str:
    def bullets(key: str) -> str:
        return "\n".join(f"- {item}" for item in analysis.get(key) or [])

    return f"""Interview Analysis Report

Overall Score: {analysis.get("score")}/100

Key Strengths:
{bullets("strengths")}

Areas for Improvement:
{bullets("improvements")}

Detailed Feedback:
{analysis.get("feedback", "")}

Recommendations:
{bullets("recommendations")}
"""
