import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from starlette.concurrency import run_in_threadpool

from resume_store import BlobResumeStore, ResumeTextStore

logger = logging.getLogger(__name__)


class LookupStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class ResumeLookup:
    """Outcome of resolving a resume's text and download URL.

    Only the lookups that were attempted count towards the status: with no blob
    store configured, finding the text alone is a success.
    """

    resume_id: str
    text: Optional[str] = None
    url: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    attempted: int = 0

    @property
    def resolved(self) -> int:
        return int(self.text is not None) + int(self.url is not None)

    @property
    def status(self) -> LookupStatus:
        if self.attempted and self.resolved == self.attempted:
            return LookupStatus.SUCCESS
        if self.resolved:
            return LookupStatus.PARTIAL
        return LookupStatus.FAILURE


async def lookup_resume(
    resume_id: str,
    text_store: ResumeTextStore,
    blob_store: Optional[BlobResumeStore] = None,
) -> ResumeLookup:
    result = ResumeLookup(resume_id=resume_id)

    result.attempted += 1
    try:
        result.text = await run_in_threadpool(text_store.load, resume_id)
    except Exception as e:
        result.errors.append(f"text: {e}")

    if blob_store is not None:
        result.attempted += 1
        try:
            if not await run_in_threadpool(blob_store.exists, resume_id):
                raise LookupError("blob not found")
            result.url = await run_in_threadpool(blob_store.sas_url, resume_id)
        except Exception as e:
            result.errors.append(f"url: {e}")

    return result
