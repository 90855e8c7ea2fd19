import json

import pytest

from session import (
    AGENT_WAIT_SECONDS,
    InterviewComplete,
    InterviewSession,
    InvalidTransition,
    MalformedMessage,
    SessionState,
    TranscriptMessage,
    UnknownMessage,
    parse_message,
)


def payload(**data) -> bytes:
    return json.dumps(data).encode()


def active_session(**kwargs) -> InterviewSession:
    session = InterviewSession(candidate_name="Jane", **kwargs)
    session.start_connecting()
    session.connected(now=100.0)
    return session


class TestParseMessage:
    def test_transcript(self):
        message = parse_message(payload(type="transcript", text="Hello"))
        assert message == TranscriptMessage(text="Hello", role="assistant", final=True, id=None)

    def test_transcript_with_role(self):
        message = parse_message(payload(type="transcript", text="Hi", role="user", final=False, id="s1"))
        assert message == TranscriptMessage(text="Hi", role="user", final=False, id="s1")

    def test_interview_complete(self):
        assert isinstance(parse_message(payload(type="interview_complete")), InterviewComplete)

    def test_unknown(self):
        assert parse_message(payload(type="ping")) == UnknownMessage(type="ping")

    @pytest.mark.parametrize("raw", [b"not json", b"[1]", b"\xff\xfe", payload(type="transcript")])
    def test_malformed(self, raw):
        with pytest.raises(MalformedMessage):
            parse_message(raw)


class TestInterviewSession:
    def test_connect_sends_start_interview(self):
        session = InterviewSession(candidate_name="Jane", resume_text="CV", questions=["Q1", "Q2"])
        assert session.state is SessionState.IDLE
        session.start_connecting()
        assert session.state is SessionState.CONNECTING

        message = json.loads(session.connected())
        assert session.state is SessionState.ACTIVE
        assert message == {
            "type": "start_interview",
            "candidateName": "Jane",
            "resumeText": "CV",
            "questions": ["Q1", "Q2"],
        }

    def test_transcript_segments_accumulate(self):
        session = active_session()
        session.handle_data(payload(type="transcript", text="Tell me about yourself."))
        session.handle_data(payload(type="transcript", text="Sure.", role="user"))
        assert [(t.role, t.text) for t in session.transcript] == [
            ("assistant", "Tell me about yourself."),
            ("user", "Sure."),
        ]

    def test_segment_updates_replace_by_id(self):
        session = active_session()
        session.handle_data(payload(type="transcript", text="I wor", role="user", final=False, id="seg-1"))
        session.handle_data(payload(type="transcript", text="I work at Acme", role="user", final=True, id="seg-1"))
        assert len(session.transcript) == 1
        assert session.transcript[0].text == "I work at Acme"
        assert session.transcript[0].final is True

    def test_interview_complete_ends_session(self):
        session = active_session()
        session.handle_data(payload(type="transcript", text="Thanks for your time."))
        message = session.handle_data(payload(type="interview_complete"))
        assert isinstance(message, InterviewComplete)
        assert session.state is SessionState.ENDED
        assert session.is_finished
        assert session.transcript_payload() == [
            {"role": "assistant", "text": "Thanks for your time.", "final": True, "id": None}
        ]

    def test_messages_ignored_when_not_active(self):
        session = InterviewSession(candidate_name="Jane")
        assert session.handle_data(payload(type="transcript", text="early")) is None
        assert session.transcript == []

    def test_malformed_payload_is_ignored(self):
        session = active_session()
        assert session.handle_data(b"{broken") is None
        assert session.state is SessionState.ACTIVE

    def test_candidate_end(self):
        session = active_session()
        message = json.loads(session.end())
        assert message == {"type": "end_interview", "candidateName": "Jane"}
        assert session.state is SessionState.ENDING
        session.finish()
        assert session.state is SessionState.ENDED

    def test_failure(self):
        session = InterviewSession(candidate_name="Jane")
        session.start_connecting()
        session.fail("camera unavailable")
        assert session.state is SessionState.ERROR
        assert session.error == "camera unavailable"
        assert session.is_finished

    @pytest.mark.parametrize("action", ["connected", "end", "finish"])
    def test_invalid_transitions_from_idle(self, action):
        session = InterviewSession(candidate_name="Jane")
        with pytest.raises(InvalidTransition):
            getattr(session, action)()

    def test_no_restart_after_end(self):
        session = active_session()
        session.handle_data(payload(type="interview_complete"))
        with pytest.raises(InvalidTransition):
            session.start_connecting()


class TestAgentPresence:
    def test_agent_missing_after_wait(self):
        session = active_session()
        assert not session.agent_missing(now=100.0 + AGENT_WAIT_SECONDS - 1)
        assert session.agent_missing(now=100.0 + AGENT_WAIT_SECONDS)

    def test_agent_seen(self):
        session = active_session()
        session.update_agent_state("connecting")
        assert not session.agent_seen
        session.update_agent_state("listening")
        assert session.agent_seen
        assert not session.agent_missing(now=1000.0)

    def test_not_missing_before_connect(self):
        assert not InterviewSession(candidate_name="Jane").agent_missing(now=1000.0)
