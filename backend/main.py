import logging
from datetime import timedelta
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from analysis import InterviewAnalyzer
from config import Settings, get_settings
from errors import InvalidInput, ServiceError, UpstreamError
from livekit_service import RoomService, create_participant_token, random_identity, room_metadata
from logging_config import setup_logging
from resume_lookup import LookupStatus, lookup_resume
from resume_parser import build_parser
from resume_store import BlobResumeStore, ResumeTextStore

logger = logging.getLogger(__name__)

app = FastAPI(title="AI Interview API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    setup_logging(get_settings().log_level)


# ── Error responses ──────────────────────────────────────

def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.message, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(message, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return error_response(message, 400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return error_response("Internal server error", 500)


# ── Dependencies ─────────────────────────────────────────

def get_text_store(settings: Settings = Depends(get_settings)) -> ResumeTextStore:
    return ResumeTextStore(settings.resume_dir)


def get_blob_store(settings: Settings = Depends(get_settings)) -> Optional[BlobResumeStore]:
    if not settings.blob_storage_enabled:
        return None
    return BlobResumeStore.from_connection_string(
        settings.azure_storage_connection_string,
        container=settings.resume_container,
        sas_ttl_hours=settings.sas_ttl_hours,
    )


def get_resume_parser(settings: Settings = Depends(get_settings)):
    return build_parser(settings.pdf_parse_url)


def get_room_service(settings: Settings = Depends(get_settings)) -> Optional[RoomService]:
    if not settings.livekit_create_room:
        return None
    settings.require("livekit_url", "livekit_api_key", "livekit_api_secret")
    return RoomService(settings.livekit_api_url, settings.livekit_api_key, settings.livekit_api_secret)


def build_analyzer(settings: Settings) -> InterviewAnalyzer:
    settings.require("gemini_api_key")
    return InterviewAnalyzer.from_api_key(settings.gemini_api_key, model=settings.scoring_model)


def get_analyzer_factory():
    return build_analyzer


# ── Connection Details ───────────────────────────────────

@app.get("/api/connection-details")
async def connection_details(
    resumeId: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    text_store: ResumeTextStore = Depends(get_text_store),
    blob_store: Optional[BlobResumeStore] = Depends(get_blob_store),
    room_service: Optional[RoomService] = Depends(get_room_service),
):
    settings.require("livekit_url", "livekit_api_key", "livekit_api_secret")

    identity = random_identity(settings.room_id_space)
    data: dict[str, Any] = {
        "serverUrl": settings.livekit_url,
        "roomName": identity.room_name,
        "participantName": identity.participant_name,
    }

    lookup = None
    if resumeId:
        data["resumeId"] = resumeId
        lookup = await lookup_resume(resumeId, text_store, blob_store)
        if lookup.status is not LookupStatus.SUCCESS:
            logger.warning(
                "Resume %s lookup %s: %s", resumeId, lookup.status.value, "; ".join(lookup.errors)
            )
        if lookup.text is not None:
            data["resumeText"] = lookup.text
        if lookup.url is not None:
            data["resumeUrl"] = lookup.url
        data["resumeStatus"] = lookup.status.value

    if room_service is not None:
        await room_service.create_room(
            identity.room_name,
            room_metadata(resumeId, lookup.url if lookup else None),
        )

    data["participantToken"] = create_participant_token(
        settings.livekit_api_key,
        settings.livekit_api_secret,
        identity.participant_name,
        identity.room_name,
        ttl=timedelta(minutes=settings.token_ttl_minutes),
    )

    return JSONResponse(data, headers={"Cache-Control": "no-store"})


# ── Resume Upload ────────────────────────────────────────

@app.post("/api/upload-resume")
async def upload_resume(
    resume: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    parser=Depends(get_resume_parser),
    text_store: ResumeTextStore = Depends(get_text_store),
    blob_store: Optional[BlobResumeStore] = Depends(get_blob_store),
):
    if resume is None or resume.content_type != "application/pdf":
        raise InvalidInput("Invalid or missing PDF file")

    file_bytes = await resume.read()
    parsed = await parser.parse(resume.filename, file_bytes, resume.content_type)
    logger.info("Parsed resume %s, text length %d", parsed.resume_id, len(parsed.text))

    response: dict[str, Any] = {
        "message": "Resume parsed successfully",
        "resumeId": parsed.resume_id,
        "textLength": len(parsed.text),
        "parsedText": parsed.text[: settings.preview_chars],
    }

    if blob_store is not None:
        try:
            stored = await run_in_threadpool(blob_store.upload, parsed.resume_id, file_bytes, resume.content_type)
        except Exception as e:
            raise UpstreamError(f"Failed to upload resume to blob storage: {e}")
        response["message"] = "Resume parsed and uploaded successfully"
        response["blobUrl"] = stored.blob_url
        response["sasUrl"] = stored.sas_url

    try:
        await run_in_threadpool(text_store.save, parsed.resume_id, parsed.text)
    except OSError as e:
        logger.error("Could not save resume %s: %s", parsed.resume_id, e)
        raise ServiceError("Failed to save resume")

    return response


# ── Resume Fetch ─────────────────────────────────────────

@app.get("/api/resume/{resume_id}")
async def get_resume(resume_id: str, text_store: ResumeTextStore = Depends(get_text_store)):
    try:
        resume_text = await run_in_threadpool(text_store.load, resume_id)
    except OSError as e:
        logger.error("Error retrieving resume %s: %s", resume_id, e)
        raise ServiceError("Failed to retrieve resume")
    return {"resumeText": resume_text}


# ── Interview Analysis ───────────────────────────────────

@app.post("/api/interview/analyze")
async def analyze_interview(
    request: Request,
    settings: Settings = Depends(get_settings),
    analyzer_factory=Depends(get_analyzer_factory),
):
    try:
        body = await request.json()
    except ValueError:
        body = None
    transcript = body.get("transcript") if isinstance(body, dict) else None
    if not isinstance(transcript, list):
        raise InvalidInput("Invalid transcript format")

    analyzer = analyzer_factory(settings)
    return await analyzer.analyze(transcript)
