import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas

from errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)

RESUME_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,128}")


def validate_resume_id(resume_id: str) -> str:
    if not resume_id or not RESUME_ID_RE.fullmatch(resume_id):
        raise InvalidInput("Invalid resume id")
    return resume_id


def text_filename(resume_id: str) -> str:
    return f"resume-{resume_id}.txt"


def blob_name(resume_id: str) -> str:
    return f"resume-{resume_id}.pdf"


# ── Ephemeral text files ─────────────────────────────────

class ResumeTextStore:
    """Parsed resume text kept as ``resume-<id>.txt`` in a local directory.

    Files live as long as the directory does; nothing cleans them up.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def path_for(self, resume_id: str) -> str:
        return os.path.join(self.directory, text_filename(validate_resume_id(resume_id)))

    def save(self, resume_id: str, text: str) -> str:
        path = self.path_for(resume_id)
        os.makedirs(self.directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Saved resume %s to %s", resume_id, path)
        return path

    def load(self, resume_id: str) -> str:
        path = self.path_for(resume_id)
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            raise NotFound("Resume not found")


# ── Azure blob storage ───────────────────────────────────

@dataclass
class StoredBlob:
    blob_url: str
    sas_url: str


class BlobResumeStore:
    """Uploaded PDFs kept in an Azure container, shared through read-only SAS URLs."""

    def __init__(self, service: BlobServiceClient, container: str = "resumes", sas_ttl: timedelta = timedelta(hours=24)):
        self.service = service
        self.container = container
        self.sas_ttl = sas_ttl

    @classmethod
    def from_connection_string(cls, connection_string: str, container: str = "resumes", sas_ttl_hours: int = 24):
        service = BlobServiceClient.from_connection_string(connection_string)
        return cls(service, container=container, sas_ttl=timedelta(hours=sas_ttl_hours))

    def _blob_client(self, resume_id: str):
        return self.service.get_blob_client(container=self.container, blob=blob_name(validate_resume_id(resume_id)))

    def upload(self, resume_id: str, data: bytes, content_type: str = "application/pdf") -> StoredBlob:
        blob = self._blob_client(resume_id)
        blob.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
        logger.info("Uploaded resume %s to blob %s", resume_id, blob.blob_name)
        return StoredBlob(blob_url=blob.url, sas_url=self.sas_url(resume_id))

    def exists(self, resume_id: str) -> bool:
        return self._blob_client(resume_id).exists()

    def sas_url(self, resume_id: str) -> str:
        blob = self._blob_client(resume_id)
        credential = self.service.credential
        now = datetime.now(timezone.utc)
        token = generate_blob_sas(
            account_name=self.service.account_name,
            container_name=self.container,
            blob_name=blob.blob_name,
            account_key=credential.account_key,
            permission=BlobSasPermissions(read=True),
            start=now,
            expiry=now + self.sas_ttl,
        )
        return f"{blob.url}?{token}"
