"""
lifevault/document_validator.py

Heuristic validation of uploaded identity / claim documents.

Pipeline (validate_document):
1. File check     - type sniffed from magic bytes, size limit, filename heuristics
2. Text extraction - pdfplumber for PDFs, Pillow + pytesseract OCR for images
3. Type detection - keyword / pattern / field scoring against DOCUMENT_TEMPLATES
4. Duplicates     - SHA-256 of the bytes checked through a caller-supplied lookup
5. Fraud scoring  - suspicious words, too little text, mixed scripts
6. Verdict        - confidence > 0.3, risk < 50, not a duplicate

Nothing here touches the database; routes_documents persists the result.
"""

from __future__ import annotations

import hashlib
import io
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

import pdfplumber
import pytesseract
from PIL import Image, ImageOps

from lifevault.config import MAX_UPLOAD_BYTES, IS_DEV

PDF = "application/pdf"
JPEG = "image/jpeg"
PNG = "image/png"
ALLOWED_TYPES = (JPEG, PNG, PDF)

OCR_MAX_SIDE = 2000
MIN_TEXT_LENGTH = 50

CONFIDENCE_THRESHOLD = 0.3
LOW_CONFIDENCE = 0.5
RISK_LIMIT = 50
HIGH_RISK = 30

SUSPICIOUS_NAME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"password", r"hack", r"crack", r"fake", r"tutorial", r"sample")
]

FRAUD_WORDS = ("photoshop", "edited", "modified", "fake", "sample", "test", "dummy")
FRAUD_PATTERNS = {word: re.compile(rf"\b{word}\b", re.IGNORECASE) for word in FRAUD_WORDS}

SCRIPT_PATTERNS = {
    "latin": re.compile(r"[a-zA-Z]"),
    "devanagari": re.compile(r"[\u0900-\u097F]"),
    "digits": re.compile(r"[0-9]"),
}


@dataclass(frozen=True)
class DocumentTemplate:
    keywords: Tuple[str, ...]
    patterns: Tuple[Pattern, ...]
    required_fields: Tuple[str, ...]


def _patterns(*exprs: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(e, re.IGNORECASE | re.MULTILINE) for e in exprs)


# Order matters: ties go to the earlier template
DOCUMENT_TEMPLATES: Dict[str, DocumentTemplate] = {
    "aadhaar": DocumentTemplate(
        keywords=("aadhaar", "uid", "government of india", "enrollment"),
        patterns=_patterns(r"\b\d{4}\s\d{4}\s\d{4}\b"),
        required_fields=("name", "father", "date of birth", "address"),
    ),
    "pan": DocumentTemplate(
        keywords=("permanent account number", "income tax", "pan card"),
        patterns=_patterns(r"\b[A-Z]{5}[0-9]{4}[A-Z]\b"),
        required_fields=("name", "father", "date of birth"),
    ),
    "death_certificate": DocumentTemplate(
        keywords=("death certificate", "municipal corporation", "registrar"),
        patterns=_patterns(r"certificate no", r"date of death"),
        required_fields=("name of deceased", "date of death", "place of death"),
    ),
    "bank_statement": DocumentTemplate(
        keywords=("bank statement", "account statement", "transaction"),
        patterns=_patterns(r"account number", r"balance", r"transaction"),
        required_fields=("account number", "bank name", "statement period"),
    ),
}

KEYWORD_POINTS = 10
PATTERN_POINTS = 20
FIELD_POINTS = 5


# ---------------------------------------------------------
# Result types
# ---------------------------------------------------------
@dataclass
class FileCheck:
    is_valid: bool
    mime_type: Optional[str]
    size: int
    name: str
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class TypeDetection:
    document_type: Optional[str]
    confidence: float
    scores: Dict[str, int] = field(default_factory=dict)


@dataclass
class FraudCheck:
    is_suspicious: bool = False
    risk_score: int = 0
    reasons: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool = False
    file_name: str = ""
    file_size: int = 0
    file_type: Optional[str] = None
    file_hash: str = ""
    document_type: Optional[str] = None
    confidence: float = 0.0
    scores: Dict[str, int] = field(default_factory=dict)
    extracted_text: str = ""
    ocr_confidence: float = 0.0
    is_duplicate: bool = False
    fraud: FraudCheck = field(default_factory=FraudCheck)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors:
            return "error"
        return "valid" if self.is_valid else "invalid"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "status": self.status,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "documentType": self.document_type,
            "confidence": round(self.confidence, 2),
            "scores": self.scores,
            "extractedText": self.extracted_text,
            "ocrConfidence": round(self.ocr_confidence, 2),
            "duplicateDetection": {"isDuplicate": self.is_duplicate, "hash": self.file_hash},
            "fraudDetection": {
                "isSuspicious": self.fraud.is_suspicious,
                "riskScore": self.fraud.risk_score,
                "reasons": self.fraud.reasons,
            },
            "errors": self.errors,
            "warnings": self.warnings,
            "recommendations": self.recommendations,
        }


# ---------------------------------------------------------
# Step 1: file check
# ---------------------------------------------------------
def sniff_mime(data: bytes) -> Optional[str]:
    """Detect PDF/JPEG/PNG from magic bytes; the client's content-type is not trusted."""
    if data.startswith(b"%PDF-"):
        return PDF
    if data.startswith(b"\xff\xd8\xff"):
        return JPEG
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return PNG
    return None


def has_suspicious_name(filename: str) -> bool:
    return any(p.search(filename or "") for p in SUSPICIOUS_NAME_PATTERNS)


def check_file(data: bytes, filename: str, max_bytes: int = MAX_UPLOAD_BYTES) -> FileCheck:
    mime = sniff_mime(data)
    result = FileCheck(is_valid=True, mime_type=mime, size=len(data), name=filename)

    if mime not in ALLOWED_TYPES:
        result.is_valid = False
        result.errors.append("Invalid file type. Only JPG, PNG, and PDF are allowed.")

    if len(data) > max_bytes:
        result.is_valid = False
        result.errors.append(f"File size too large. Maximum {max_bytes // (1024 * 1024)}MB allowed.")

    if has_suspicious_name(filename):
        result.warnings.append("File name contains suspicious patterns. Manual review recommended.")

    return result


# ---------------------------------------------------------
# Step 2: text extraction
# ---------------------------------------------------------
def _extract_pdf_text(data: bytes) -> Tuple[str, float]:
    parts = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text() or ""
            if page_text:
                parts.append(page_text)
    text = "\n".join(parts)
    # Embedded text layer is exact when present
    return text, 1.0 if text.strip() else 0.0


def preprocess_image(img: Image.Image) -> Image.Image:
    """Shrink to fit OCR_MAX_SIDE, grayscale and stretch contrast."""
    img = img.copy()
    img.thumbnail((OCR_MAX_SIDE, OCR_MAX_SIDE))
    img = ImageOps.grayscale(img)
    return ImageOps.autocontrast(img)


def _extract_image_text(data: bytes) -> Tuple[str, float]:
    with Image.open(io.BytesIO(data)) as img:
        prepared = preprocess_image(img)
    ocr = pytesseract.image_to_data(prepared, lang="eng", output_type=pytesseract.Output.DICT)

    words, confidences = [], []
    for word, conf in zip(ocr.get("text", []), ocr.get("conf", [])):
        word = (word or "").strip()
        try:
            conf = float(conf)
        except (TypeError, ValueError):
            conf = -1.0
        if word:
            words.append(word)
        if word and conf >= 0:
            confidences.append(conf)

    text = " ".join(words)
    confidence = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0
    return text, confidence


def extract_text(data: bytes, mime_type: Optional[str]) -> Tuple[str, float]:
    """
    Return (lower-cased text, confidence 0..1).
    Extraction failures yield ("", 0.0); the caller reports a warning.
    """
    try:
        if mime_type == PDF:
            text, confidence = _extract_pdf_text(data)
        elif mime_type in (JPEG, PNG):
            text, confidence = _extract_image_text(data)
        else:
            return "", 0.0
    except Exception as e:
        print(f"[DOCS] Text extraction failed ({mime_type}): {e!r}")
        return "", 0.0

    if IS_DEV:
        print(f"[DOCS] Extracted {len(text)} chars, confidence={confidence:.2f}")
    return text.lower(), confidence


# ---------------------------------------------------------
# Step 3: type detection
# ---------------------------------------------------------
def score_template(text: str, template: DocumentTemplate) -> int:
    text = text.lower()
    keyword_hits = sum(1 for k in template.keywords if k in text)
    pattern_hits = sum(1 for p in template.patterns if p.search(text))
    field_hits = sum(1 for f in template.required_fields if f in text)
    return keyword_hits * KEYWORD_POINTS + pattern_hits * PATTERN_POINTS + field_hits * FIELD_POINTS


def detect_document_type(text: str) -> TypeDetection:
    scores = {name: score_template(text, t) for name, t in DOCUMENT_TEMPLATES.items()}
    best_type, best_score = None, 0
    for name, score in scores.items():
        if score > best_score:
            best_type, best_score = name, score
    return TypeDetection(
        document_type=best_type,
        confidence=min(best_score / 100.0, 1.0),
        scores=scores,
    )


# ---------------------------------------------------------
# Step 4: duplicates
# ---------------------------------------------------------
def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------
# Step 5: fraud scoring
# ---------------------------------------------------------
def detect_fraud(text: str, filename: str) -> FraudCheck:
    result = FraudCheck()

    for word, pattern in FRAUD_PATTERNS.items():
        if pattern.search(text) or pattern.search(filename or ""):
            result.is_suspicious = True
            result.risk_score += 20
            result.reasons.append(f"Suspicious keyword detected: {word}")

    if len(text.strip()) < MIN_TEXT_LENGTH:
        result.risk_score += 15
        result.reasons.append("Very little text extracted - possible low quality or tampered document")

    scripts = [name for name, p in SCRIPT_PATTERNS.items() if p.search(text)]
    if len(scripts) > 2:
        result.risk_score += 10
        result.reasons.append("Multiple scripts detected - possible copy-paste tampering")

    return result


# ---------------------------------------------------------
# Pipeline
# ---------------------------------------------------------
def validate_document(
    data: bytes,
    filename: str,
    document_type: Optional[str] = None,
    duplicate_lookup: Optional[Callable[[str], bool]] = None,
) -> ValidationResult:
    """
    Run the full pipeline on raw file bytes.

    Args:
        data: file contents
        filename: client-supplied name (used for heuristics only)
        document_type: optional expected type; a mismatch adds a warning
        duplicate_lookup: returns True if a file with this SHA-256 was seen before
    """
    result = ValidationResult(file_name=filename, file_size=len(data))

    file_check = check_file(data, filename)
    result.file_type = file_check.mime_type
    result.file_hash = compute_file_hash(data)
    result.warnings.extend(file_check.warnings)
    if not file_check.is_valid:
        result.errors.extend(file_check.errors)
        return result

    text, ocr_confidence = extract_text(data, file_check.mime_type)
    result.extracted_text = text
    result.ocr_confidence = ocr_confidence
    if not text.strip():
        result.warnings.append("No text could be extracted from the document.")

    detection = detect_document_type(text)
    result.document_type = detection.document_type
    result.confidence = detection.confidence
    result.scores = detection.scores

    if document_type and detection.document_type and document_type != detection.document_type:
        result.warnings.append(
            f"Expected a {document_type} document but content looks like {detection.document_type}."
        )

    result.is_duplicate = bool(duplicate_lookup(result.file_hash)) if duplicate_lookup else False

    result.fraud = detect_fraud(text, filename)

    if result.confidence < LOW_CONFIDENCE:
        result.recommendations.append("Low confidence in document type detection. Manual review recommended.")
    if result.fraud.risk_score > HIGH_RISK:
        result.recommendations.append("High fraud risk detected. Manual review required.")
    if result.is_duplicate:
        result.recommendations.append("Duplicate document detected. This document has been submitted before.")

    result.is_valid = (
        result.confidence > CONFIDENCE_THRESHOLD
        and result.fraud.risk_score < RISK_LIMIT
        and not result.is_duplicate
    )
    return result
