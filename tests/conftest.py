import base64
import io
import json
import sys
from pathlib import Path
from typing import Callable, Optional

import fitz  # PyMuPDF
import pytest
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings, get_settings  # noqa: E402


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    def _create(pages: int = 1, width: float = 600, height: float = 800, text: Optional[str] = None) -> bytes:
        doc = fitz.open()
        for _ in range(pages):
            page = doc.new_page(width=width, height=height)
            if text:
                page.insert_text((72, 72), text, fontname="helv", fontsize=11)
        data = doc.tobytes()
        doc.close()
        return data

    return _create


@pytest.fixture()
def sample_pdf(pdf_factory: Callable[..., bytes]) -> bytes:
    return pdf_factory(pages=2)


@pytest.fixture()
def signature_png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (100, 40), (0, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def profile(signature_png: bytes) -> dict:
    return {
        "companyProfile": {
            "basic": {
                "legalName": "Acme CC",
                "registrationNumber": "2019/123456/23",
                "vatNumber": "4123456789",
                "csdNumber": "MAAA0123456",
            },
            "contact": {
                "postalAddress": "PO Box 1, Pretoria, 0001",
                "physicalAddress": "12 Main Road, Pretoria",
                "telephone": "012 345 6789",
                "cellphone": "082 123 4567",
                "email": "info@acme.co.za",
            },
            "directors": [{"name": "Jane Doe", "idNumber": "8001015009087", "position": "Director"}],
            "compliance": {"rsaResident": True, "hasBranch": False, "accreditedRep": False},
            "preferences": {"womenOwnedPercent": 51, "pointsClaimed": 20},
            "symbols": {},
        },
        "signature": {"base64": "data:image/png;base64," + base64.b64encode(signature_png).decode("ascii")},
    }


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, profile: dict) -> Settings:
    profile_path = tmp_path / "company_profile.json"
    profile_path.write_text(json.dumps(profile), encoding="utf-8")

    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("PROFILE_PATH", str(profile_path))
    monkeypatch.setenv("VAULT_SECRET", "test-secret")
    for name in ("AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"):
        monkeypatch.setenv(name, "")
    return Settings()


@pytest.fixture()
def client(settings: Settings):
    from fastapi.testclient import TestClient

    from app import app

    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
