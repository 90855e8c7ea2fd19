import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient

import main
from config import Settings, get_settings

API_KEY = "devkey"
API_SECRET = "test-secret-that-is-long-enough-for-hs256"


def make_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def settings(tmp_path):
    return Settings(
        livekit_url="wss://interview.livekit.cloud",
        livekit_api_key=API_KEY,
        livekit_api_secret=API_SECRET,
        gemini_api_key="test-gemini-key",
        resume_dir=str(tmp_path),
    )


@pytest.fixture
def client(settings):
    main.app.dependency_overrides[get_settings] = lambda: settings
    main.app.dependency_overrides[main.get_blob_store] = lambda: None
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
