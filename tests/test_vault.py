from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest

from errors import DocumentNotFoundError
from vault import Vault, safe_filename


def _token(url: str) -> str:
    return url.rsplit("/", 1)[-1]


def test_store_read_and_token(tmp_path: Path, sample_pdf: bytes) -> None:
    vault = Vault(tmp_path, "secret")

    meta = vault.store(sample_pdf, title="Filled SBD 4", filename="SBD 4 form.pdf")

    assert meta["filename"] == "SBD_4_form.pdf"
    assert vault.read(meta["id"]) == sample_pdf
    assert vault.resolve_token(_token(meta["download_url"])) == meta["id"]
    created = datetime.fromisoformat(meta["created_at"])
    expires = datetime.fromisoformat(meta["expires_at"])
    assert expires - created == timedelta(hours=3)


def test_attachments(tmp_path: Path, sample_pdf: bytes) -> None:
    vault = Vault(tmp_path, "secret")
    meta = vault.store(sample_pdf, attachments={"analysis": {"id": "a"}})

    assert vault.read_attachment(meta["id"], "analysis") == {"id": "a"}
    with pytest.raises(DocumentNotFoundError):
        vault.read_attachment(meta["id"], "missing")


def test_expired_documents_are_hidden_and_refused(tmp_path: Path, sample_pdf: bytes) -> None:
    vault = Vault(tmp_path, "secret")
    meta = vault.store(sample_pdf)

    later = datetime.now(timezone.utc) + timedelta(hours=4)
    assert vault.is_expired(meta, later)
    assert vault.list_active(later) == []
    assert [m["id"] for m in vault.list_active()] == [meta["id"]]

    expired = Vault(tmp_path, "secret", ttl_hours=0).store(sample_pdf)
    with pytest.raises(DocumentNotFoundError):
        vault.read(expired["id"])


def test_bad_tokens(tmp_path: Path) -> None:
    vault = Vault(tmp_path, "secret")
    forged = jwt.encode({"sub": "x", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}, "other", algorithm="HS256")
    stale = jwt.encode({"sub": "x", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}, "secret", algorithm="HS256")

    for token in ("garbage", forged, stale):
        with pytest.raises(DocumentNotFoundError):
            vault.resolve_token(token)


def test_unknown_and_unsafe_ids(tmp_path: Path) -> None:
    vault = Vault(tmp_path, "secret")
    with pytest.raises(DocumentNotFoundError):
        vault.read("does-not-exist")
    with pytest.raises(DocumentNotFoundError):
        vault.read("../etc")


def test_delete(tmp_path: Path, sample_pdf: bytes) -> None:
    vault = Vault(tmp_path, "secret")
    meta = vault.store(sample_pdf)

    assert vault.delete(meta["id"])
    assert not vault.delete(meta["id"])


def test_safe_filename() -> None:
    assert safe_filename("SBD 4 (final).PDF") == "SBD_4_final.pdf"
    assert safe_filename("...") == "document.pdf"
