"""Headless candidate client: upload a resume, join the interview room, analyze.

    interview-client --api http://localhost:8000 --name "Jane Doe" resume.pdf
"""
import argparse
import asyncio
import json
import logging
import os
from typing import Any, Optional

import httpx

from analysis import render_report
from logging_config import setup_logging
from session import AGENT_STATE_ATTRIBUTE, InterviewComplete, InterviewSession, SessionState

logger = logging.getLogger(__name__)

DEFAULT_QUESTIONS = [
    "Tell me about yourself and your background.",
    "Walk me through a recent project you are proud of.",
    "Describe a difficult technical problem you solved and how you approached it.",
    "How do you handle disagreements within a team?",
    "Where do you see yourself growing in your next role?",
]


class ApiError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class InterviewApi:
    def __init__(self, base_url: str, timeout: float = 120.0, transport: httpx.AsyncBaseTransport | None = None):
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _json(self, response: httpx.Response) -> Any:
        if response.is_error:
            try:
                message = response.json().get("error") or response.reason_phrase
            except (ValueError, AttributeError):
                message = response.text or response.reason_phrase
            raise ApiError(message, response.status_code)
        return response.json()

    async def upload_resume(self, filename: str, data: bytes) -> dict:
        files = {"resume": (os.path.basename(filename), data, "application/pdf")}
        return await self._json(await self.client.post("/api/upload-resume", files=files))

    async def connection_details(self, resume_id: Optional[str] = None) -> dict:
        params = {"resumeId": resume_id} if resume_id else None
        return await self._json(await self.client.get("/api/connection-details", params=params))

    async def fetch_resume(self, resume_id: str) -> str:
        data = await self._json(await self.client.get(f"/api/resume/{resume_id}"))
        return data["resumeText"]

    async def analyze(self, transcript: list[dict]) -> dict:
        return await self._json(await self.client.post("/api/interview/analyze", json={"transcript": transcript}))


class TranscriptFile:
    """Transcript kept on disk between the room session and the analysis step."""

    def __init__(self, path: str):
        self.path = path

    def save(self, transcript: list[dict]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(transcript, f)

    def load(self) -> list[dict]:
        if not os.path.exists(self.path):
            raise ValueError("No interview transcript found. Please complete an interview first.")
        with open(self.path, encoding="utf-8") as f:
            try:
                transcript = json.load(f)
            except json.JSONDecodeError:
                transcript = None
        if not isinstance(transcript, list) or not transcript:
            raise ValueError("Invalid transcript format. Please try the interview again.")
        return transcript

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


# ── Room session ─────────────────────────────────────────

async def run_room(
    details: dict,
    session: InterviewSession,
    stop: Optional[asyncio.Event] = None,
    room_factory=None,
    microphone_factory=None,
    muted: bool = False,
    poll_interval: float = 0.5,
) -> None:
    """Join the room, publish the microphone and pump data-channel messages
    into ``session`` until it ends.

    Setting ``stop`` ends the interview from the candidate side. The room is
    always disconnected on the way out, and any failure after joining leaves
    the session in the error state.
    """
    if room_factory is None:
        from livekit import rtc

        room_factory = rtc.Room
    if microphone_factory is None:
        from microphone import Microphone

        microphone_factory = Microphone

    room = room_factory()
    done = asyncio.Event()
    stop = stop or asyncio.Event()
    mic = None

    @room.on("data_received")
    def on_data_received(packet):
        message = session.handle_data(packet.data)
        if isinstance(message, InterviewComplete):
            logger.info("Interview completed by the agent")
            done.set()

    @room.on("participant_connected")
    def on_participant_connected(participant):
        logger.info("Participant connected: %s", participant.identity)

    @room.on("participant_disconnected")
    def on_participant_disconnected(participant):
        logger.info("Participant disconnected: %s", participant.identity)

    @room.on("participant_attributes_changed")
    def on_attributes_changed(changed_attributes, participant):
        if AGENT_STATE_ATTRIBUTE in changed_attributes:
            session.update_agent_state(changed_attributes[AGENT_STATE_ATTRIBUTE])
            logger.debug("Agent state: %s", session.agent_state)

    @room.on("disconnected")
    def on_disconnected(*args):
        if session.state is SessionState.ACTIVE:
            session.fail("Disconnected from interview room")
        done.set()

    session.start_connecting()
    try:
        await room.connect(details["serverUrl"], details["participantToken"])
        mic = microphone_factory(muted=muted)
        track, options = await mic.start()
        await room.local_participant.publish_track(track, options)
        await room.local_participant.publish_data(session.connected(), reliable=True)

        warned = False
        while not done.is_set():
            if stop.is_set():
                await room.local_participant.publish_data(session.end(), reliable=True)
                session.finish()
                break
            if not warned and session.agent_missing():
                logger.warning("No interviewer agent joined the room yet; check that the agent is running")
                warned = True
            try:
                await asyncio.wait_for(done.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
    except (Exception, asyncio.CancelledError) as e:
        logger.error("Interview room session failed: %s", e)
        if not session.is_finished:
            session.fail(str(e) or type(e).__name__)
        raise
    finally:
        if mic is not None:
            await mic.aclose()
        await room.disconnect()


async def analyze_stored(api: InterviewApi, transcript_file: TranscriptFile) -> dict:
    transcript = transcript_file.load()
    analysis = await api.analyze(transcript)
    transcript_file.clear()
    return analysis


async def run_interview(args: argparse.Namespace) -> int:
    api = InterviewApi(args.api)
    transcript_file = TranscriptFile(args.transcript)
    try:
        if not args.analyze_only:
            with open(args.resume, "rb") as f:
                upload = await api.upload_resume(args.resume, f.read())
            resume_id = upload["resumeId"]
            logger.info("Uploaded resume %s (%d characters)", resume_id, upload["textLength"])

            details = await api.connection_details(resume_id)
            resume_text = details.get("resumeText") or upload.get("parsedText", "")
            session = InterviewSession(
                candidate_name=args.name,
                resume_text=resume_text,
                questions=DEFAULT_QUESTIONS,
            )

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            if args.max_minutes:
                loop.call_later(args.max_minutes * 60, stop.set)
            await run_room(details, session, stop=stop, muted=args.mute)

            if session.state is not SessionState.ENDED:
                logger.error("Interview did not finish: %s", session.error)
                return 1
            transcript_file.save(session.transcript_payload())

        analysis = await analyze_stored(api, transcript_file)
        print(render_report(analysis))
        return 0
    except (ApiError, ValueError) as e:
        logger.error("%s", e)
        return 1
    finally:
        await api.aclose()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run an AI interview from the command line")
    parser.add_argument("resume", nargs="?", help="resume PDF to upload")
    parser.add_argument("--api", default=os.getenv("INTERVIEW_API_URL", "http://localhost:8000"))
    parser.add_argument("--name", default="Candidate", help="candidate name sent to the interviewer")
    parser.add_argument("--transcript", default=os.path.join(".interview", "interviewTranscript.json"))
    parser.add_argument("--max-minutes", type=float, default=None, help="end the interview after this long")
    parser.add_argument("--analyze-only", action="store_true", help="only analyze a stored transcript")
    parser.add_argument("--mute", action="store_true", help="join with the microphone muted")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    if not args.analyze_only and not args.resume:
        build_arg_parser().error("a resume PDF is required unless --analyze-only is given")
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    return asyncio.run(run_interview(args))


if __name__ == "__main__":
    raise SystemExit(main())
