"""
lifevault/routes_documents.py

File upload/download and document validation endpoints.

Uploaded files live on local disk under UPLOAD_DIR/<user_id>/. Only the
uploader and admins can download them; anyone else gets 404.
"""

from __future__ import annotations

import json
import re
import time
from pathlib import Path as FsPath
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, Query, Request, UploadFile
from fastapi.responses import FileResponse

from lifevault.audit import log_event
from lifevault.auth_context import AuthContext, require_auth_context
from lifevault.authz import Capability
from lifevault.config import IS_DEV, MAX_BATCH_FILES, MAX_UPLOAD_BYTES, MAX_UPLOAD_MB, UPLOAD_DIR
from lifevault.db import DB_ERRORS, commit, execute, fetch_all, fetch_one, get_db, rollback
from lifevault.dependencies import require_capability
from lifevault.document_validator import (
    ALLOWED_TYPES,
    DOCUMENT_TEMPLATES,
    ValidationResult,
    sniff_mime,
    validate_document,
)
from lifevault.models import AuditAction, AuditResource
from lifevault.utils import load_json_dict, new_id, now_iso, safe_float

router = APIRouter(tags=["documents"])

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
# "." and ".." are never valid path segments
_STORED_NAME = re.compile(r"^(?!\.{1,2}$)[A-Za-z0-9._-]+$")
EXTRACTED_TEXT_LIMIT = 5000


def safe_filename(name: Optional[str]) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-]."""
    base = FsPath(name or "file").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:120] or "file"


def _read_upload(upload: UploadFile) -> bytes:
    # Read one byte past the limit so oversize files are detected without buffering them whole
    return upload.file.read(MAX_UPLOAD_BYTES + 1)


# ---------------------------------------------------------
# Upload / download
# ---------------------------------------------------------
@router.post("/api/upload", dependencies=[Depends(require_capability(Capability.DOCUMENTS_UPLOAD))])
def upload_file(
    request: Request,
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Dict[str, Any]:
    data = _read_upload(file)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File size too large. Maximum {MAX_UPLOAD_MB}MB allowed.")
    mime = sniff_mime(data)
    if mime not in ALLOWED_TYPES:
        raise HTTPException(status_code=415, detail="Invalid file type. Only JPG, PNG, and PDF are allowed.")

    stored_name = f"{int(time.time() * 1000)}-{safe_filename(file.filename)}"
    user_dir = FsPath(UPLOAD_DIR) / ctx.user_id
    user_dir.mkdir(parents=True, exist_ok=True)
    (user_dir / stored_name).write_bytes(data)

    file_key = f"{ctx.user_id}/{stored_name}"
    conn = get_db()
    try:
        log_event(conn, AuditAction.file_upload, AuditResource.document, user_id=ctx.user_id,
                  resource_id=file_key, description=f"Uploaded {file.filename}",
                  metadata={"size": len(data), "type": mime}, request=request)
        commit(conn)
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[DOCS] Database error logging upload: {e}")
        (user_dir / stored_name).unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    if IS_DEV:
        print(f"[DOCS] Stored upload {file_key} ({len(data)} bytes)")

    return {
        "success": True,
        "fileName": file_key,
        "url": f"/api/files/{file_key}",
        "size": len(data),
        "type": mime,
        "originalName": file.filename,
    }


@router.get("/api/files/{user_id}/{file_name}")
def download_file(
    request: Request,
    user_id: str = Path(...),
    file_name: str = Path(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> FileResponse:
    if ctx.user_id != user_id and Capability.DOCUMENTS_READ_ALL.value not in ctx.capabilities:
        raise HTTPException(status_code=404, detail="File not found")
    if not _STORED_NAME.match(file_name) or not _STORED_NAME.match(user_id):
        raise HTTPException(status_code=404, detail="File not found")

    root = FsPath(UPLOAD_DIR).resolve()
    path = (root / user_id / file_name).resolve()
    if not path.is_relative_to(root) or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    conn = get_db()
    try:
        log_event(conn, AuditAction.file_download, AuditResource.document, user_id=ctx.user_id,
                  resource_id=f"{user_id}/{file_name}", description="File downloaded", request=request)
        commit(conn)
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[DOCS] Database error logging download: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    with open(path, "rb") as fh:
        media_type = sniff_mime(fh.read(16)) or "application/octet-stream"
    return FileResponse(str(path), media_type=media_type)


# ---------------------------------------------------------
# Validation
# ---------------------------------------------------------
def _hash_seen(conn, file_hash: str) -> bool:
    return fetch_one(conn, "SELECT id FROM document_validations WHERE file_hash = :hash LIMIT 1",
                     {"hash": file_hash}) is not None


def _store_validation(conn, user_id: str, result: ValidationResult) -> str:
    doc_id = new_id()
    details = result.to_dict()
    details.pop("extractedText", None)
    execute(
        conn,
        """
        INSERT INTO document_validations (id, user_id, file_name, file_size, file_type, file_hash, document_type,
                                          confidence_score, fraud_risk_score, is_duplicate, validation_status,
                                          extracted_text, validation_details, created_at)
        VALUES (:id, :user_id, :file_name, :file_size, :file_type, :file_hash, :document_type,
                :confidence_score, :fraud_risk_score, :is_duplicate, :validation_status,
                :extracted_text, :validation_details, :created_at)
        """,
        {
            "id": doc_id,
            "user_id": user_id,
            "file_name": result.file_name,
            "file_size": result.file_size,
            "file_type": result.file_type,
            "file_hash": result.file_hash,
            "document_type": result.document_type,
            "confidence_score": result.confidence,
            "fraud_risk_score": result.fraud.risk_score,
            "is_duplicate": int(result.is_duplicate),
            "validation_status": result.status,
            "extracted_text": result.extracted_text[:EXTRACTED_TEXT_LIMIT],
            "validation_details": json.dumps(details),
            "created_at": now_iso(),
        },
    )
    return doc_id


def _check_document_type(document_type: Optional[str]) -> Optional[str]:
    if document_type and document_type not in DOCUMENT_TEMPLATES:
        allowed = ", ".join(DOCUMENT_TEMPLATES)
        raise HTTPException(status_code=400, detail=f"Unknown document type. Expected one of: {allowed}")
    return document_type or None


def _validate_and_store(conn, upload: UploadFile, document_type: Optional[str], ctx: AuthContext,
                        request: Request) -> Dict[str, Any]:
    data = _read_upload(upload)
    filename = upload.filename or "document"
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413,
                            detail=f"{filename}: file size too large. Maximum {MAX_UPLOAD_MB}MB allowed.")
    result = validate_document(data, filename, document_type, duplicate_lookup=lambda h: _hash_seen(conn, h))
    doc_id = _store_validation(conn, ctx.user_id, result)
    log_event(conn, AuditAction.create, AuditResource.document, user_id=ctx.user_id, resource_id=doc_id,
              description=f"Validated {filename}: {result.status}",
              metadata={"documentType": result.document_type, "riskScore": result.fraud.risk_score},
              request=request)

    if IS_DEV:
        print(f"[DOCS] Validated {filename}: status={result.status}, type={result.document_type}, "
              f"confidence={result.confidence:.2f}, risk={result.fraud.risk_score}")
    return {"fileName": filename, "documentId": doc_id, "validation": result.to_dict()}


@router.post("/api/documents/validate", dependencies=[Depends(require_capability(Capability.DOCUMENTS_UPLOAD))])
def validate_single(
    request: Request,
    document: UploadFile = File(...),
    document_type: Optional[str] = Form(None, alias="documentType"),
    ctx: AuthContext = Depends(require_auth_context),
) -> Dict[str, Any]:
    document_type = _check_document_type(document_type)
    conn = get_db()
    try:
        outcome = _validate_and_store(conn, document, document_type, ctx, request)
        commit(conn)
        return {"success": True, "validation": outcome["validation"], "documentId": outcome["documentId"]}
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[DOCS] Database error storing validation: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.post("/api/documents/validate-batch",
             dependencies=[Depends(require_capability(Capability.DOCUMENTS_UPLOAD))])
def validate_batch(
    request: Request,
    documents: List[UploadFile] = File(...),
    ctx: AuthContext = Depends(require_auth_context),
) -> Dict[str, Any]:
    if len(documents) > MAX_BATCH_FILES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BATCH_FILES} documents per batch")

    conn = get_db()
    try:
        results = [_validate_and_store(conn, doc, None, ctx, request) for doc in documents]
        commit(conn)
        valid = sum(1 for r in results if r["validation"]["isValid"])
        return {
            "success": True,
            "results": results,
            "summary": {
                "totalDocuments": len(results),
                "validDocuments": valid,
                "invalidDocuments": len(results) - valid,
            },
        }
    except HTTPException:
        raise
    except DB_ERRORS as e:
        rollback(conn)
        print(f"[DOCS] Database error storing batch: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


def _history_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "fileName": row["file_name"],
        "fileSize": row["file_size"],
        "fileType": row.get("file_type"),
        "documentType": row.get("document_type"),
        "confidenceScore": safe_float(row.get("confidence_score")),
        "fraudRiskScore": safe_float(row.get("fraud_risk_score")),
        "isDuplicate": bool(row.get("is_duplicate")),
        "validationStatus": row["validation_status"],
        "validationDetails": load_json_dict(row.get("validation_details")),
        "createdAt": row["created_at"],
    }


def _scoped_rows(conn, ctx: AuthContext, include_all: bool, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if include_all and Capability.DOCUMENTS_READ_ALL.value in ctx.capabilities:
        sql, params = "SELECT * FROM document_validations", {}
    else:
        sql, params = "SELECT * FROM document_validations WHERE user_id = :user_id", {"user_id": ctx.user_id}
    sql += " ORDER BY created_at DESC, id"
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = limit
    return fetch_all(conn, sql, params)


@router.get("/api/documents/history", dependencies=[Depends(require_capability(Capability.DOCUMENTS_UPLOAD))])
def validation_history(
    all_users: bool = Query(False, alias="all"),
    limit: int = Query(50, ge=1, le=200),
    ctx: AuthContext = Depends(require_auth_context),
) -> Dict[str, Any]:
    conn = get_db()
    try:
        rows = _scoped_rows(conn, ctx, all_users, limit)
        return {"success": True, "validations": [_history_row(r) for r in rows]}
    except DB_ERRORS as e:
        print(f"[DOCS] Database error reading history: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()


@router.get("/api/documents/stats", dependencies=[Depends(require_capability(Capability.DOCUMENTS_UPLOAD))])
def validation_stats(
    all_users: bool = Query(False, alias="all"),
    ctx: AuthContext = Depends(require_auth_context),
) -> Dict[str, Any]:
    conn = get_db()
    try:
        rows = _scoped_rows(conn, ctx, all_users)
    except DB_ERRORS as e:
        print(f"[DOCS] Database error reading stats: {e}")
        raise HTTPException(status_code=500, detail="Database error")
    finally:
        conn.close()

    document_types: Dict[str, int] = {}
    risk = {"low": 0, "medium": 0, "high": 0}
    valid = 0
    for r in rows:
        if r["validation_status"] == "valid":
            valid += 1
        doc_type = r.get("document_type") or "unknown"
        document_types[doc_type] = document_types.get(doc_type, 0) + 1
        score = safe_float(r.get("fraud_risk_score"))
        if score < 20:
            risk["low"] += 1
        elif score < 50:
            risk["medium"] += 1
        else:
            risk["high"] += 1

    return {
        "success": True,
        "stats": {
            "totalDocuments": len(rows),
            "validDocuments": valid,
            "invalidDocuments": len(rows) - valid,
            "documentTypes": document_types,
            "fraudRiskDistribution": risk,
        },
    }
