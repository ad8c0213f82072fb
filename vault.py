"""Short-lived store for generated and uploaded PDFs.

Every entry gets ``expires_at = created_at + ttl``. Downloads go through a
signed token (JWT with the same expiry), so a link stops working when the
document does. Expired entries are hidden from listings and refused on read;
removing their files is left to whoever manages the data directory.
"""

import json
import logging
import re
import shutil
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import jwt

from errors import DocumentNotFoundError, VaultError

logger = logging.getLogger(__name__)

META_FILE = "meta.json"
TOKEN_ALGORITHM = "HS256"
_SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def safe_filename(name: str) -> str:
    """Keep the readable part of an uploaded filename; always ends in .pdf."""
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", Path(name).stem).strip("._") or "document"
    return f"{stem}.pdf"


class Vault:
    def __init__(self, root: Path, secret: str, ttl_hours: int = 3) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.secret = secret
        self.ttl = timedelta(hours=ttl_hours)

    def _dir(self, doc_id: str) -> Path:
        if not _SAFE_NAME.match(doc_id or ""):
            raise DocumentNotFoundError(f"Invalid document id: {doc_id!r}")
        return self.root / doc_id

    def _read_meta(self, doc_id: str) -> dict:
        p = self._dir(doc_id) / META_FILE
        if not p.exists():
            raise DocumentNotFoundError(f"Document not found: {doc_id}")
        return json.loads(p.read_text(encoding="utf-8"))

    def download_token(self, doc_id: str, expires_at: datetime) -> str:
        return jwt.encode({"sub": doc_id, "exp": expires_at}, self.secret, algorithm=TOKEN_ALGORITHM)

    def download_url(self, doc_id: str, expires_at: datetime) -> str:
        return f"/api/download/{self.download_token(doc_id, expires_at)}"

    def store(
        self,
        pdf_bytes: bytes,
        title: str = "",
        filename: Optional[str] = None,
        attachments: Optional[dict] = None,
        doc_id: Optional[str] = None,
    ) -> dict:
        """Write a PDF (plus optional JSON attachments) and return its metadata."""
        doc_id = doc_id or str(uuid.uuid4())
        filename = safe_filename(filename or f"{doc_id}.pdf")

        created_at = _now()
        expires_at = created_at + self.ttl
        d = self._dir(doc_id)
        try:
            d.mkdir(parents=True, exist_ok=True)
            (d / filename).write_bytes(pdf_bytes)
            for name, data in (attachments or {}).items():
                (d / f"{name}.json").write_text(json.dumps(data), encoding="utf-8")
            meta = {
                "id": doc_id,
                "title": title or filename,
                "filename": filename,
                "created_at": created_at.isoformat(),
                "expires_at": expires_at.isoformat(),
            }
            (d / META_FILE).write_text(json.dumps(meta, indent=2), encoding="utf-8")
        except OSError as e:
            raise VaultError(f"Vault write failed for {doc_id}: {e}") from e

        logger.info("Saved to vault: %s (expires %s)", filename, meta["expires_at"])
        return self.with_url(meta)

    def with_url(self, meta: dict) -> dict:
        expires_at = datetime.fromisoformat(meta["expires_at"])
        return {**meta, "download_url": self.download_url(meta["id"], expires_at)}

    def is_expired(self, meta: dict, now: Optional[datetime] = None) -> bool:
        return datetime.fromisoformat(meta["expires_at"]) <= (now or _now())

    def meta(self, doc_id: str) -> dict:
        meta = self._read_meta(doc_id)
        if self.is_expired(meta):
            raise DocumentNotFoundError(f"Document expired: {doc_id}", user_message="Document has expired")
        return meta

    def read(self, doc_id: str) -> bytes:
        meta = self.meta(doc_id)
        return (self._dir(doc_id) / meta["filename"]).read_bytes()

    def read_attachment(self, doc_id: str, name: str) -> dict:
        self.meta(doc_id)
        p = self._dir(doc_id) / f"{name}.json"
        if not p.exists():
            raise DocumentNotFoundError(f"{name} not found for {doc_id}", user_message="Document not found or not analyzed yet")
        return json.loads(p.read_text(encoding="utf-8"))

    def resolve_token(self, token: str) -> str:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[TOKEN_ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise DocumentNotFoundError("Download link expired", user_message="Download link has expired") from e
        except jwt.InvalidTokenError as e:
            raise DocumentNotFoundError(f"Invalid download token: {e}", user_message="Invalid download link") from e
        return claims["sub"]

    def list_active(self, now: Optional[datetime] = None) -> List[dict]:
        docs = []
        for meta_path in self.root.glob(f"*/{META_FILE}"):
            try:
                meta = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error("Failed to read metadata for %s: %s", meta_path.parent.name, e)
                continue
            if not self.is_expired(meta, now):
                docs.append(meta)
        docs.sort(key=lambda m: m["created_at"], reverse=True)
        return docs

    def delete(self, doc_id: str) -> bool:
        d = self._dir(doc_id)
        if not d.exists():
            return False
        shutil.rmtree(d)
        return True
