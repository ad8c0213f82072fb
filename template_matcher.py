"""Pick a stored template for an incoming document.

Only the filename is consulted: a template matches when its id or name occurs
in the lower-cased filename. Content-based detection is limited to the fixed
document maps (``document_maps.detect_form_type``).
"""

import logging
from typing import Optional, Sequence

from models import TemplateSummary
from template_store import TemplateStore

logger = logging.getLogger(__name__)


def match_template(filename: str, known_templates: Sequence[TemplateSummary]) -> Optional[str]:
    lowered = (filename or "").lower()
    for t in known_templates:
        if (t.id and t.id.lower() in lowered) or (t.name and t.name.lower() in lowered):
            logger.info("Template detected by filename match: %s", t.id)
            return t.id
    return None


def detect_template(filename: Optional[str], store: TemplateStore) -> Optional[str]:
    if not filename:
        return None
    return match_template(filename, store.summaries())
