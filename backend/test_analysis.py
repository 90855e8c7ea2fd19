import asyncio
import json
from types import SimpleNamespace

import pytest

from analysis import (
    InterviewAnalyzer,
    build_analysis_prompt,
    format_transcript,
    parse_analysis_json,
    render_report,
)
from errors import UpstreamError

RESULT = {
    "score": 64,
    "strengths": ["Concise"],
    "improvements": ["Depth"],
    "feedback": "Solid start.",
    "recommendations": ["Practice"],
}


class FakeModels:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


def fake_client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def test_format_transcript_keeps_final_turns():
    turns = [
        {"role": "assistant", "text": "Hello", "final": True},
        {"role": "user", "text": "Hi th", "final": False},
        {"role": "user", "text": "", "final": True},
        {"role": "user", "text": "Hi there", "final": True},
        "not a turn",
    ]
    assert format_transcript(turns) == "ASSISTANT: Hello\nUSER: Hi there"


def test_prompt_embeds_transcript():
    prompt = build_analysis_prompt("USER: I like Python")
    assert "USER: I like Python" in prompt
    assert '"score": number (0-100)' in prompt
    assert '"recommendations": string[]' in prompt


@pytest.mark.parametrize(
    "text",
    [
        json.dumps(RESULT),
        "```json\n" + json.dumps(RESULT) + "\n```",
        "Here you go: " + json.dumps(RESULT) + " Thanks!",
    ],
)
def test_parse_analysis_json(text):
    assert parse_analysis_json(text) == RESULT


def test_parse_analysis_json_rejects_non_object():
    with pytest.raises(ValueError):
        parse_analysis_json("[1, 2, 3]")
    with pytest.raises(ValueError):
        parse_analysis_json("no json here")


def test_analyzer_calls_model():
    models = FakeModels(text=json.dumps(RESULT))
    analyzer = InterviewAnalyzer(fake_client(models), model="gemini-test")
    turns = [{"role": "user", "text": "I led the migration.", "final": True}]

    assert asyncio.run(analyzer.analyze(turns)) == RESULT
    call = models.calls[0]
    assert call["model"] == "gemini-test"
    assert "USER: I led the migration." in call["contents"]
    assert call["config"]["response_mime_type"] == "application/json"
    assert call["config"]["temperature"] == 0.7
    assert call["config"]["max_output_tokens"] == 2000


def test_analyzer_wraps_llm_errors():
    analyzer = InterviewAnalyzer(fake_client(FakeModels(error=RuntimeError("quota exceeded"))))
    with pytest.raises(UpstreamError, match="Failed to analyze interview: quota exceeded"):
        asyncio.run(analyzer.analyze([]))


def test_analyzer_wraps_parse_errors():
    analyzer = InterviewAnalyzer(fake_client(FakeModels(text="I cannot score this.")))
    with pytest.raises(UpstreamError):
        asyncio.run(analyzer.analyze([]))


def test_render_report():
    report = render_report(RESULT)
    assert "Overall Score: 64/100" in report
    assert "- Concise" in report
    assert "- Depth" in report
    assert "Solid start." in report
    assert "- Practice" in report
