import logging
import uuid
from dataclasses import dataclass

import fitz  # PyMuPDF
import httpx
from starlette.concurrency import run_in_threadpool

from errors import UpstreamError
from resume_store import RESUME_ID_RE

logger = logging.getLogger(__name__)


@dataclass
class ParsedResume:
    resume_id: str
    text: str


def extract_pdf_text(file_bytes: bytes) -> str:
    doc = fitz.open(stream=file_bytes, filetype="pdf")
    text = ""
    for page in doc:
        text += page.get_text()
    doc.close()
    return text


class RemoteResumeParser:
    """Forwards the PDF to the external parsing service.

    The service answers ``{"resumeId": ..., "parsedText": ...}`` on success and
    ``{"error": ...}`` otherwise.
    """

    def __init__(self, url: str, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def parse(self, filename: str, data: bytes, content_type: str = "application/pdf") -> ParsedResume:
        files = {"resume": (filename or "resume.pdf", data, content_type)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, files=files)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Resume parser error: {e}")

        if response.is_error:
            try:
                detail = response.json().get("error") or "Unknown error"
            except (ValueError, AttributeError):
                detail = "Unknown error"
            raise UpstreamError(f"Resume parser error: {detail}")

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError("Resume parser returned invalid JSON")
        if not isinstance(payload, dict):
            raise UpstreamError("Resume parser returned invalid JSON")
        text = payload.get("parsedText")
        if not text:
            raise UpstreamError("No parsed text received from resume parser")
        resume_id = str(payload.get("resumeId") or uuid.uuid4().hex)
        if not RESUME_ID_RE.fullmatch(resume_id):
            raise UpstreamError("Resume parser returned an invalid resume id")
        return ParsedResume(resume_id=resume_id, text=text)


class LocalResumeParser:
    """In-process PyMuPDF extraction, used when no parsing service is configured."""

    async def parse(self, filename: str, data: bytes, content_type: str = "application/pdf") -> ParsedResume:
        try:
            text = await run_in_threadpool(extract_pdf_text, data)
        except Exception as e:
            raise UpstreamError(f"Could not extract text from PDF: {e}")
        if not text.strip():
            raise UpstreamError("Could not extract text from PDF")
        return ParsedResume(resume_id=uuid.uuid4().hex, text=text)


def build_parser(pdf_parse_url: str | None):
    if pdf_parse_url:
        return RemoteResumeParser(pdf_parse_url)
    logger.info("PDF_PARSE not set, extracting resume text locally")
    return LocalResumeParser()
