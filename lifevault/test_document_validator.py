"""
lifevault/test_document_validator.py

Unit tests for the document validation pipeline. OCR and PDF parsing are
patched; the scoring, fraud and verdict logic run for real.

Run:
    pytest lifevault/test_document_validator.py -v
"""

import io
from unittest.mock import patch

import pytest
from PIL import Image

from lifevault import document_validator as dv

AADHAAR_TEXT = (
    "government of india aadhaar uid enrollment no 1234/5678 "
    "name: asha rao father: mohan rao date of birth: 01/01/1980 "
    "address: 12 mg road bengaluru 1234 5678 9012"
)

PAN_TEXT = (
    "income tax department permanent account number abcde1234f "
    "name asha rao father mohan rao date of birth 01/01/1980"
)


def _png_bytes(size=(40, 20)):
    buf = io.BytesIO()
    Image.new("RGB", size, "white").save(buf, format="PNG")
    return buf.getvalue()


class TestFileCheck:
    @pytest.mark.parametrize("data,expected", [
        (b"%PDF-1.7\n...", dv.PDF),
        (b"\xff\xd8\xff\xe0rest", dv.JPEG),
        (b"\x89PNG\r\n\x1a\nrest", dv.PNG),
        (b"GIF89a", None),
        (b"", None),
    ])
    def test_sniff_mime(self, data, expected):
        assert dv.sniff_mime(data) == expected

    def test_rejects_unknown_type(self):
        result = dv.check_file(b"GIF89a....", "photo.gif")
        assert result.is_valid is False
        assert "Invalid file type" in result.errors[0]

    def test_rejects_oversize(self):
        result = dv.check_file(b"%PDF-" + b"0" * 100, "big.pdf", max_bytes=50)
        assert result.is_valid is False
        assert any("too large" in e for e in result.errors)

    def test_suspicious_name_is_a_warning(self):
        result = dv.check_file(_png_bytes(), "fake_aadhaar.png")
        assert result.is_valid is True
        assert result.warnings


class TestTypeDetection:
    def test_aadhaar(self):
        detection = dv.detect_document_type(AADHAAR_TEXT)
        assert detection.document_type == "aadhaar"
        assert detection.confidence == pytest.approx(0.8)

    def test_pan_beats_overlapping_bank_terms(self):
        detection = dv.detect_document_type(PAN_TEXT)
        assert detection.document_type == "pan"
        assert detection.scores["pan"] > detection.scores["bank_statement"]

    def test_no_match(self):
        detection = dv.detect_document_type("lorem ipsum dolor sit amet")
        assert detection.document_type is None
        assert detection.confidence == 0.0

    def test_confidence_capped_at_one(self):
        text = " ".join([AADHAAR_TEXT] * 3) + " " + " ".join(dv.DOCUMENT_TEMPLATES["aadhaar"].keywords)
        assert dv.detect_document_type(text).confidence <= 1.0


class TestFraud:
    def test_clean_text(self):
        assert dv.detect_fraud(AADHAAR_TEXT, "aadhaar.png").risk_score == 0

    def test_keywords_need_word_boundaries(self):
        text = AADHAAR_TEXT + " last will and testament, unmodified"
        assert dv.detect_fraud(text, "scan.png").is_suspicious is False

    def test_keyword_in_text(self):
        result = dv.detect_fraud(AADHAAR_TEXT + " edited copy", "scan.png")
        assert result.is_suspicious is True
        assert result.risk_score == 20
        assert "Suspicious keyword detected: edited" in result.reasons

    def test_keyword_in_filename(self):
        result = dv.detect_fraud(AADHAAR_TEXT, "dummy-card.png")
        assert result.is_suspicious is True

    def test_short_text(self):
        result = dv.detect_fraud("aadhaar", "scan.png")
        assert result.risk_score == 15

    def test_mixed_scripts(self):
        result = dv.detect_fraud(AADHAAR_TEXT + " आधार", "scan.png")
        assert result.risk_score == 10


class TestExtraction:
    def test_preprocess_shrinks_and_grays(self):
        img = dv.preprocess_image(Image.new("RGB", (4000, 1000), "white"))
        assert img.size == (2000, 500)
        assert img.mode == "L"

    def test_image_ocr_confidence(self):
        fake_ocr = {"text": ["Government", "", "of", "India"], "conf": ["90", "-1", "80", "70"]}
        with patch("lifevault.document_validator.pytesseract.image_to_data", return_value=fake_ocr):
            text, confidence = dv.extract_text(_png_bytes(), dv.PNG)
        assert text == "government of india"
        assert confidence == pytest.approx(0.8)

    def test_extraction_failure_degrades(self):
        with patch("lifevault.document_validator._extract_image_text", side_effect=RuntimeError("no tesseract")):
            assert dv.extract_text(_png_bytes(), dv.PNG) == ("", 0.0)

    def test_unsupported_type_has_no_text(self):
        assert dv.extract_text(b"GIF89a", None) == ("", 0.0)


class TestPipeline:
    def test_valid_document(self):
        with patch("lifevault.document_validator.extract_text", return_value=(AADHAAR_TEXT, 0.9)):
            result = dv.validate_document(_png_bytes(), "aadhaar.png", "aadhaar")
        assert result.is_valid is True
        assert result.status == "valid"
        assert result.document_type == "aadhaar"
        assert result.file_type == dv.PNG
        assert len(result.file_hash) == 64
        data = result.to_dict()
        assert data["duplicateDetection"]["isDuplicate"] is False
        assert data["fraudDetection"]["riskScore"] == 0

    def test_duplicate_is_invalid(self):
        seen = []
        with patch("lifevault.document_validator.extract_text", return_value=(AADHAAR_TEXT, 0.9)):
            result = dv.validate_document(_png_bytes(), "aadhaar.png",
                                          duplicate_lookup=lambda h: seen.append(h) or True)
        assert seen == [result.file_hash]
        assert result.is_duplicate is True
        assert result.is_valid is False
        assert any("Duplicate" in r for r in result.recommendations)

    def test_type_mismatch_warns(self):
        with patch("lifevault.document_validator.extract_text", return_value=(PAN_TEXT, 1.0)):
            result = dv.validate_document(b"%PDF-1.4 body", "pan.pdf", "aadhaar")
        assert result.document_type == "pan"
        assert any("Expected a aadhaar" in w for w in result.warnings)

    def test_unreadable_document_is_invalid(self):
        with patch("lifevault.document_validator.extract_text", return_value=("", 0.0)):
            result = dv.validate_document(_png_bytes(), "scan.png")
        assert result.is_valid is False
        assert result.status == "invalid"
        assert "No text could be extracted from the document." in result.warnings

    def test_bad_file_short_circuits(self):
        with patch("lifevault.document_validator.extract_text") as extract:
            result = dv.validate_document(b"GIF89a", "photo.gif")
        extract.assert_not_called()
        assert result.status == "error"
        assert result.errors
