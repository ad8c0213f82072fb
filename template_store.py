"""Local template store.

Each template lives in ``<templates_dir>/<slug>/`` as ``template.json`` (the
row: id, name, mapping, pdf_path, created_at) plus an optional source PDF.
"""

import hashlib
import json
import logging
import re
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from errors import TemplateNotFoundError, TemplateUnreadableError
from models import TemplateMapping, TemplateSummary

logger = logging.getLogger(__name__)

ROW_FILE = "template.json"


def template_slug(template_id: str) -> str:
    """Filesystem-safe directory name for a user-chosen template id."""
    readable = re.sub(r"[^A-Za-z0-9_-]+", "_", template_id).strip("_")[:40]
    digest = hashlib.sha1(template_id.encode("utf-8")).hexdigest()[:8]
    return f"{readable}-{digest}" if readable else digest


class TemplateStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _dir(self, template_id: str) -> Path:
        return self.root / template_slug(template_id)

    def _read_row(self, path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    def exists(self, template_id: str) -> bool:
        return (self._dir(template_id) / ROW_FILE).exists()

    def save(
        self,
        template_id: str,
        mapping: dict,
        pdf_bytes: Optional[bytes] = None,
        name: Optional[str] = None,
    ) -> TemplateMapping:
        """Create or replace a template; keeps the previous source PDF if none is given."""
        parsed = TemplateMapping.model_validate({"pageSize": "A4", **mapping, "templateId": template_id})

        d = self._dir(template_id)
        d.mkdir(parents=True, exist_ok=True)
        row_path = d / ROW_FILE
        pdf_path = ""
        if row_path.exists():
            pdf_path = self._read_row(row_path).get("pdf_path", "")
        if pdf_bytes is not None:
            pdf_file = d / f"{int(time.time() * 1000)}_source.pdf"
            pdf_file.write_bytes(pdf_bytes)
            pdf_path = pdf_file.name

        row = {
            "id": template_id,
            "name": name or template_id,
            "mapping": parsed.to_wire(),
            "pdf_path": pdf_path,
            "created_at": time.time(),
        }
        row_path.write_text(json.dumps(row, indent=2), encoding="utf-8")
        logger.info("Template saved: %s with %d fields", template_id, len(parsed.fields))
        return parsed

    def load_mapping(self, template_id: str) -> TemplateMapping:
        row_path = self._dir(template_id) / ROW_FILE
        if not row_path.exists():
            raise TemplateNotFoundError(f"Template not found: {template_id}")
        try:
            row = self._read_row(row_path)
            mapping = TemplateMapping.model_validate(row["mapping"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            raise TemplateUnreadableError(f"Template mapping for {template_id} is unreadable: {e}") from e
        logger.info("Loaded template mapping: %s with %d fields", template_id, len(mapping.fields))
        return mapping

    def source_pdf(self, template_id: str) -> Optional[bytes]:
        row_path = self._dir(template_id) / ROW_FILE
        if not row_path.exists():
            return None
        pdf_path = self._read_row(row_path).get("pdf_path")
        if not pdf_path:
            return None
        p = self._dir(template_id) / pdf_path
        return p.read_bytes() if p.exists() else None

    def list_rows(self) -> List[dict]:
        """Rows newest first; unreadable rows are skipped."""
        rows = []
        for row_path in self.root.glob(f"*/{ROW_FILE}"):
            try:
                rows.append(self._read_row(row_path))
            except (OSError, ValueError) as e:
                logger.error("Failed to read template row %s: %s", row_path, e)
        rows.sort(key=lambda r: r.get("created_at", 0), reverse=True)
        return rows

    def summaries(self) -> List[TemplateSummary]:
        out = []
        for r in self.list_rows():
            if not r.get("id"):
                continue
            mapping = r.get("mapping") or {}
            fields = list((mapping.get("fields") or {}).keys())
            created = r.get("created_at")
            out.append(TemplateSummary(
                id=r["id"],
                name=r.get("name") or "",
                page_size=mapping.get("pageSize") or "A4",
                field_count=len(fields),
                fields=fields,
                created_at=datetime.fromtimestamp(created, timezone.utc).isoformat() if created else None,
            ))
        return out

    def delete(self, template_id: str) -> bool:
        """Delete the row and any stored source PDF."""
        d = self._dir(template_id)
        if not d.exists():
            return False
        shutil.rmtree(d)
        logger.info("Deleted template: %s", template_id)
        return True
