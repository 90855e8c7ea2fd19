"""Candidate-side interview session.

The session is driven by two inputs: lifecycle calls made by the client
(``start_connecting``, ``connected``, ``end``...) and messages received on the
room's data channel. Every message is parsed into one of the typed variants
below before it touches the state.
"""
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional, Union

logger = logging.getLogger(__name__)

AGENT_STATE_ATTRIBUTE = "lk.agent.state"
ACTIVE_AGENT_STATES = {"listening", "thinking", "speaking"}
AGENT_WAIT_SECONDS = 10.0


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"
    ERROR = "error"


TRANSITIONS = {
    SessionState.IDLE: {SessionState.CONNECTING},
    SessionState.CONNECTING: {SessionState.ACTIVE, SessionState.ERROR},
    SessionState.ACTIVE: {SessionState.ENDING, SessionState.ENDED, SessionState.ERROR},
    SessionState.ENDING: {SessionState.ENDED, SessionState.ERROR},
    SessionState.ENDED: set(),
    SessionState.ERROR: set(),
}


class InvalidTransition(Exception):
    def __init__(self, current: SessionState, target: SessionState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


# ── Wire messages ────────────────────────────────────────

@dataclass
class TranscriptTurn:
    role: str
    text: str
    final: bool = True
    id: Optional[str] = None


@dataclass
class TranscriptMessage:
    text: str
    role: str = "assistant"
    final: bool = True
    id: Optional[str] = None


@dataclass
class InterviewComplete:
    pass


@dataclass
class UnknownMessage:
    type: Optional[str]


IncomingMessage = Union[TranscriptMessage, InterviewComplete, UnknownMessage]


class MalformedMessage(ValueError):
    pass


def parse_message(payload: bytes) -> IncomingMessage:
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMessage(f"Payload is not JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedMessage("Payload is not a JSON object")

    kind = data.get("type")
    if kind == "transcript":
        text = data.get("text")
        if not isinstance(text, str):
            raise MalformedMessage("Transcript message without text")
        return TranscriptMessage(
            text=text,
            role=str(data.get("role") or "assistant"),
            final=bool(data.get("final", True)),
            id=data.get("id"),
        )
    if kind == "interview_complete":
        return InterviewComplete()
    return UnknownMessage(type=kind)


def encode_message(message: dict) -> bytes:
    return json.dumps(message).encode("utf-8")


def start_interview_message(candidate_name: str, resume_text: str, questions: list[str]) -> bytes:
    return encode_message({
        "type": "start_interview",
        "candidateName": candidate_name,
        "resumeText": resume_text,
        "questions": list(questions),
    })


def end_interview_message(candidate_name: str) -> bytes:
    return encode_message({"type": "end_interview", "candidateName": candidate_name})


# ── Session ──────────────────────────────────────────────

@dataclass
class InterviewSession:
    candidate_name: str
    resume_text: str = ""
    questions: list[str] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    transcript: list[TranscriptTurn] = field(default_factory=list)
    agent_state: Optional[str] = None
    agent_seen: bool = False
    error: Optional[str] = None
    connected_at: Optional[float] = None

    def _move(self, target: SessionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        logger.debug("Session %s -> %s", self.state.value, target.value)
        self.state = target

    def start_connecting(self) -> None:
        self._move(SessionState.CONNECTING)

    def connected(self, now: Optional[float] = None) -> bytes:
        """Mark the room as joined and return the start_interview payload."""
        self._move(SessionState.ACTIVE)
        self.connected_at = time.monotonic() if now is None else now
        return start_interview_message(self.candidate_name, self.resume_text, self.questions)

    def fail(self, reason: str) -> None:
        self._move(SessionState.ERROR)
        self.error = reason

    def end(self) -> bytes:
        """Begin a candidate-initiated end and return the end_interview payload."""
        self._move(SessionState.ENDING)
        return end_interview_message(self.candidate_name)

    def finish(self) -> None:
        self._move(SessionState.ENDED)

    @property
    def is_finished(self) -> bool:
        return self.state in (SessionState.ENDED, SessionState.ERROR)

    def handle_data(self, payload: bytes) -> Optional[IncomingMessage]:
        """Apply one data-channel payload. Returns the parsed message, or None if ignored."""
        try:
            message = parse_message(payload)
        except MalformedMessage as e:
            logger.warning("Ignoring data message: %s", e)
            return None

        if self.state is not SessionState.ACTIVE:
            logger.debug("Ignoring %s received while %s", type(message).__name__, self.state.value)
            return None

        if isinstance(message, TranscriptMessage):
            self._add_segment(message)
        elif isinstance(message, InterviewComplete):
            self._move(SessionState.ENDED)
        else:
            logger.debug("Ignoring message of type %r", message.type)
        return message

    def _add_segment(self, message: TranscriptMessage) -> None:
        if message.id is not None:
            for turn in self.transcript:
                if turn.id == message.id:
                    turn.text = message.text
                    turn.final = message.final
                    return
        self.transcript.append(
            TranscriptTurn(role=message.role, text=message.text, final=message.final, id=message.id)
        )

    # Agent presence

    def update_agent_state(self, value: Optional[str]) -> None:
        self.agent_state = value
        if value in ACTIVE_AGENT_STATES:
            self.agent_seen = True

    def agent_missing(self, now: Optional[float] = None) -> bool:
        """True once the agent has failed to show up within AGENT_WAIT_SECONDS of joining."""
        if self.agent_seen or self.connected_at is None or self.state is not SessionState.ACTIVE:
            return False
        now = time.monotonic() if now is None else now
        return now - self.connected_at >= AGENT_WAIT_SECONDS

    def transcript_payload(self) -> list[dict]:
        return [asdict(turn) for turn in self.transcript]
