# frontend/test_frontend_config.py
# Backend URL resolution and the API client's pure helpers

import json

import pytest
import requests

from frontend import config
from frontend.api_client import error_detail, is_public_endpoint


class TestApiUrl:
    def test_local_allows_http(self):
        config.validate_api_url("http://127.0.0.1:8000", "local")

    @pytest.mark.parametrize("url", ["http://api.lifevault.in", "https://localhost:8000", ""])
    def test_production_rejects(self, url):
        with pytest.raises(ValueError):
            config.validate_api_url(url, "production")

    def test_backend_url_wins(self, monkeypatch):
        monkeypatch.setattr(config, "ENV", "production")
        monkeypatch.setenv("BACKEND_URL", "https://api.lifevault.in/")
        monkeypatch.setenv("API_BASE_URL", "https://other.lifevault.in")
        assert config.get_api_base_url() == "https://api.lifevault.in"

    def test_local_default(self, monkeypatch):
        monkeypatch.setattr(config, "ENV", "local")
        monkeypatch.delenv("BACKEND_URL", raising=False)
        monkeypatch.delenv("API_BASE_URL", raising=False)
        assert config.get_api_base_url() == "http://127.0.0.1:8000"

    def test_production_without_url_fails(self, monkeypatch):
        monkeypatch.setattr(config, "ENV", "production")
        monkeypatch.delenv("BACKEND_URL", raising=False)
        monkeypatch.delenv("API_BASE_URL", raising=False)
        with pytest.raises(RuntimeError):
            config.get_api_base_url()


def _response(status, body):
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode() if body is not None else b"<html>"
    return resp


class TestApiClientHelpers:
    def test_public_endpoints(self):
        assert is_public_endpoint("/api/auth/send-otp")
        assert is_public_endpoint("/api/auth/refresh")
        assert is_public_endpoint("/api/health")
        assert not is_public_endpoint("/api/auth/me")
        assert not is_public_endpoint("/api/assets")

    def test_error_detail_string(self):
        assert error_detail(_response(409, {"detail": "Allocation exceeds 100%"})) == "Allocation exceeds 100%"

    def test_error_detail_validation_list(self):
        body = {"detail": [{"loc": ["body", "allocationPercentage"], "msg": "too large"}]}
        assert error_detail(_response(422, body)) == "allocationPercentage: too large"

    def test_error_detail_non_json(self):
        assert error_detail(_response(502, None), "Upload failed") == "Upload failed (HTTP 502)"
        assert error_detail(None, "No response") == "No response"
