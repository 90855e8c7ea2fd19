import os
import tempfile
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from errors import ConfigError

load_dotenv()


# Setting attribute -> environment variable, used in error messages.
ENV_NAMES = {
    "livekit_url": "LIVEKIT_URL",
    "livekit_api_key": "LIVEKIT_API_KEY",
    "livekit_api_secret": "LIVEKIT_API_SECRET",
    "livekit_http_url": "LIVEKIT_HTTP_URL",
    "azure_storage_connection_string": "AZURE_STORAGE_CONNECTION_STRING",
    "pdf_parse_url": "PDF_PARSE",
    "gemini_api_key": "GEMINI_API_KEY",
}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


class Settings(BaseModel):
    livekit_url: Optional[str] = None
    livekit_api_key: Optional[str] = None
    livekit_api_secret: Optional[str] = None
    livekit_http_url: Optional[str] = None
    livekit_create_room: bool = False

    azure_storage_connection_string: Optional[str] = None
    resume_container: str = "resumes"

    pdf_parse_url: Optional[str] = None

    gemini_api_key: Optional[str] = None
    scoring_model: str = "gemini-2.5-flash-lite"

    resume_dir: str = tempfile.gettempdir()
    room_id_space: int = Field(10_000, gt=0)
    token_ttl_minutes: int = 15
    sas_ttl_hours: int = 24
    preview_chars: int = 500

    frontend_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    def require(self, *fields: str) -> None:
        """Raise a ConfigError naming every listed setting that is unset."""
        missing = [ENV_NAMES.get(f, f.upper()) for f in fields if not getattr(self, f)]
        if missing:
            raise ConfigError(missing)

    @property
    def livekit_api_url(self) -> Optional[str]:
        """HTTP(S) endpoint for the LiveKit server API."""
        if self.livekit_http_url:
            return self.livekit_http_url
        if not self.livekit_url:
            return None
        if self.livekit_url.startswith("wss://"):
            return "https://" + self.livekit_url[len("wss://"):]
        if self.livekit_url.startswith("ws://"):
            return "http://" + self.livekit_url[len("ws://"):]
        return self.livekit_url

    @property
    def blob_storage_enabled(self) -> bool:
        return bool(self.azure_storage_connection_string)


def load_settings() -> Settings:
    values = {
        "livekit_url": _env_str("LIVEKIT_URL"),
        "livekit_api_key": _env_str("LIVEKIT_API_KEY"),
        "livekit_api_secret": _env_str("LIVEKIT_API_SECRET"),
        "livekit_http_url": _env_str("LIVEKIT_HTTP_URL"),
        "livekit_create_room": _env_flag("LIVEKIT_CREATE_ROOM", False),
        "azure_storage_connection_string": _env_str("AZURE_STORAGE_CONNECTION_STRING"),
        "pdf_parse_url": _env_str("PDF_PARSE"),
        "gemini_api_key": _env_str("GEMINI_API_KEY"),
    }
    optional = {
        "resume_container": _env_str("RESUME_CONTAINER"),
        "scoring_model": _env_str("SCORING_MODEL"),
        "resume_dir": _env_str("RESUME_DIR"),
        "room_id_space": _env_str("ROOM_ID_SPACE"),
        "frontend_url": _env_str("FRONTEND_URL"),
        "log_level": _env_str("LOG_LEVEL"),
    }
    values.update({k: v for k, v in optional.items() if v is not None})
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    return load_settings()
