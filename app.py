import json
import logging
import uuid
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import Field, TypeAdapter, ValidationError

from config import Settings, configure_logging, get_settings
from errors import (
    DocumentLoadError,
    DocumentNotFoundError,
    FormOverlayError,
    TemplateNotFoundError,
    TemplateUnreadableError,
    UpstreamServiceError,
    VaultError,
)
from field_data import load_profile
from fill_form_pipeline import bake_layers, compile_layers, fill_fixed_map, resolve_template_id, sign_detected
from layer_compiler import apply_layer_edits
from models import Analysis, LayerEdit, TextLayer, WireModel
from ocr_fields import analyze_with_textract, build_analysis, parse_textract_blocks
from overlay_fill import open_pdf, page_sizes
from template_matcher import detect_template
from template_store import TemplateStore, template_slug
from vault import Vault

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Form overlay")

# Most specific first; the first match decides the status code.
ERROR_STATUS = [
    (DocumentLoadError, 422),
    (TemplateNotFoundError, 404),
    (DocumentNotFoundError, 404),
    (TemplateUnreadableError, 500),
    (UpstreamServiceError, 502),
    (VaultError, 500),
]

_edits_adapter = TypeAdapter(List[LayerEdit])


@app.exception_handler(FormOverlayError)
async def overlay_error_handler(request: Request, exc: FormOverlayError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.user_message})


# --- dependencies --------------------------------------------------------
def get_store(settings: Settings = Depends(get_settings)) -> TemplateStore:
    return TemplateStore(settings.templates_dir)


def get_vault(settings: Settings = Depends(get_settings)) -> Vault:
    return Vault(settings.vault_dir, settings.vault_secret, settings.vault_ttl_hours)


def get_profile(settings: Settings = Depends(get_settings)) -> dict:
    if not settings.profile_path.exists():
        raise HTTPException(404, "Company profile not found")
    try:
        return load_profile(settings.profile_path)
    except ValueError as e:
        raise HTTPException(500, f"Company profile is unreadable: {e}")


async def read_pdf_upload(upload: UploadFile, settings: Settings) -> bytes:
    name = (upload.filename or "").lower()
    if upload.content_type != "application/pdf" and not name.endswith(".pdf"):
        raise HTTPException(400, "Only PDF files are allowed")
    data = await upload.read()
    if not data:
        raise HTTPException(400, "No file uploaded")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(400, "File size exceeds the maximum allowed size")
    return data


def parse_edits(raw: Optional[str]) -> List[LayerEdit]:
    if not raw:
        return []
    try:
        return _edits_adapter.validate_json(raw)
    except ValidationError as e:
        raise HTTPException(400, f"Invalid edits: {e.errors()[0].get('msg')}")


# --- request bodies ------------------------------------------------------
class SignRequest(WireModel):
    document_id: str = Field(alias="documentId")
    nudges: dict = Field(default_factory=dict)


class RenderRequest(WireModel):
    document_id: str = Field(alias="documentId")
    text_layers: List[TextLayer] = Field(default_factory=list, alias="textLayers")
    edits: List[LayerEdit] = Field(default_factory=list)
    title: str = ""


def _vault_response(meta: dict) -> dict:
    return {"documentId": meta["id"], "title": meta["title"], "expiresAt": meta["expires_at"],
            "downloadUrl": meta["download_url"]}


def _pdf_response(pdf_bytes: bytes, filename: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- routes --------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/profile")
def api_profile(profile: dict = Depends(get_profile)):
    return profile


@app.get("/api/templates")
def api_templates(store: TemplateStore = Depends(get_store)):
    return [t.to_wire() for t in store.summaries()]


@app.post("/api/templates")
async def api_save_template(
    template_id: str = Form(...),
    mapping: str = Form(...),
    name: Optional[str] = Form(None),
    pdf: Optional[UploadFile] = File(None),
    store: TemplateStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    if not template_id.strip():
        raise HTTPException(400, "Template id is required")
    try:
        mapping_obj = json.loads(mapping)
    except ValueError:
        raise HTTPException(400, "Mapping must be valid JSON")
    if not isinstance(mapping_obj, dict):
        raise HTTPException(400, "Mapping must be a JSON object")

    pdf_bytes = await read_pdf_upload(pdf, settings) if pdf is not None else None
    try:
        saved = store.save(template_id.strip(), mapping_obj, pdf_bytes=pdf_bytes, name=name)
    except ValidationError as e:
        raise HTTPException(400, f"Invalid mapping: {e.errors()[0].get('msg')}")
    return {"success": True, "templateId": saved.template_id, "fieldCount": len(saved.fields)}


@app.delete("/api/templates/{template_id}")
def api_delete_template(template_id: str, store: TemplateStore = Depends(get_store)):
    if not store.delete(template_id):
        raise HTTPException(404, "Template not found")
    return {"ok": True}


@app.get("/api/templates/{template_id}/pdf")
def api_template_pdf(template_id: str, store: TemplateStore = Depends(get_store)):
    if not store.exists(template_id):
        raise HTTPException(404, "Template not found")
    pdf_bytes = store.source_pdf(template_id)
    if pdf_bytes is None:
        raise HTTPException(404, "Template PDF not found")
    return _pdf_response(pdf_bytes, f"{template_slug(template_id)}.pdf")


@app.post("/api/templates/detect")
def api_detect_template(filename: str = Form(...), store: TemplateStore = Depends(get_store)):
    return {"templateId": detect_template(filename, store)}


@app.post("/api/process-template")
async def api_process_template(
    pdf: UploadFile = File(...),
    template_id: Optional[str] = Form(None),
    edits: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    store: TemplateStore = Depends(get_store),
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    """Compile the editor layers for an uploaded form; the PDF itself is left untouched."""
    pdf_bytes = await read_pdf_upload(pdf, settings)
    resolved_id = resolve_template_id(pdf.filename, template_id, store)
    template = store.load_mapping(resolved_id)
    layers, _ = compile_layers(
        pdf_bytes, template, profile, scale=settings.editor_scale, edits=parse_edits(edits),
    )
    meta = vault.store(pdf_bytes, title=pdf.filename or "", filename=pdf.filename)
    return {
        "success": True,
        "templateId": resolved_id,
        "textLayers": [layer.to_wire() for layer in layers],
        "editorScale": settings.editor_scale,
        **_vault_response(meta),
    }


@app.post("/api/process-pdf")
async def api_process_pdf(
    pdf: UploadFile = File(...),
    form_type: Optional[str] = Form(None),
    settings: Settings = Depends(get_settings),
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    pdf_bytes = await read_pdf_upload(pdf, settings)
    filled, used_form_type = fill_fixed_map(pdf_bytes, profile, form_type, settings.default_form_type)
    meta = vault.store(filled, title=f"{pdf.filename or 'document'} ({used_form_type})", filename=pdf.filename)
    return {"success": True, "formType": used_form_type, **_vault_response(meta)}


@app.post("/api/analyze-pdf")
async def api_analyze_pdf(
    pdf: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    pdf_bytes = await read_pdf_upload(pdf, settings)
    open_pdf(pdf_bytes).close()

    blocks = analyze_with_textract(pdf_bytes, settings)
    fields, signatures = parse_textract_blocks(blocks)
    document_id = str(uuid.uuid4())
    analysis = build_analysis(
        fields, signatures, profile,
        source_filename=pdf.filename or "source.pdf",
        low_confidence_threshold=settings.low_confidence_threshold,
        document_id=document_id,
    )
    meta = vault.store(
        pdf_bytes, title=pdf.filename or "", filename=pdf.filename,
        attachments={"analysis": analysis.to_wire()}, doc_id=document_id,
    )
    logger.info("Analyzed %s: %d mapped fields, %d signatures",
                document_id, len(analysis.mapped_fields), len(analysis.signatures))
    return {**analysis.to_wire(), **_vault_response(meta)}


@app.post("/api/sign-pdf")
def api_sign_pdf(
    body: SignRequest,
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    source = vault.read(body.document_id)
    analysis = Analysis.model_validate(vault.read_attachment(body.document_id, "analysis"))
    signed = sign_detected(source, analysis, profile, body.nudges)
    title = f"Signed {analysis.source_filename}"
    meta = vault.store(signed, title=title, filename=f"signed_{analysis.source_filename}")
    return {"success": True, **_vault_response(meta)}


def _render(body: RenderRequest, vault: Vault, profile: dict, scale: float) -> bytes:
    source = vault.read(body.document_id)
    layers = body.text_layers
    if body.edits:
        doc = open_pdf(source)
        try:
            sizes = page_sizes(doc)
        finally:
            doc.close()
        layers = apply_layer_edits(layers, body.edits, sizes, scale=scale)
    return bake_layers(source, layers, profile, scale=scale)


@app.post("/api/download-pdf")
def api_download_pdf(
    body: RenderRequest,
    settings: Settings = Depends(get_settings),
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    pdf_bytes = _render(body, vault, profile, settings.editor_scale)
    return _pdf_response(pdf_bytes, "filled-document.pdf")


@app.post("/api/save-edited-pdf")
def api_save_edited_pdf(
    body: RenderRequest,
    settings: Settings = Depends(get_settings),
    vault: Vault = Depends(get_vault),
    profile: dict = Depends(get_profile),
):
    pdf_bytes = _render(body, vault, profile, settings.editor_scale)
    source_meta = vault.meta(body.document_id)
    meta = vault.store(
        pdf_bytes, title=body.title or f"Filled {source_meta['title']}",
        filename=f"filled_{source_meta['filename']}",
    )
    return {"success": True, **_vault_response(meta)}


@app.get("/api/vault")
def api_vault(vault: Vault = Depends(get_vault)):
    return [_vault_response(vault.with_url(meta)) for meta in vault.list_active()]


@app.delete("/api/vault/{doc_id}")
def api_vault_delete(doc_id: str, vault: Vault = Depends(get_vault)):
    if not vault.delete(doc_id):
        raise HTTPException(404, "Document not found")
    return {"ok": True}


@app.get("/api/download/{token}")
def api_download(token: str, vault: Vault = Depends(get_vault)):
    doc_id = vault.resolve_token(token)
    meta = vault.meta(doc_id)
    return _pdf_response(vault.read(doc_id), meta["filename"])
