"""
Unit Tests for MistralOCRGateway
================================

HTTP calls are patched at ``requests.post``.
"""

import base64
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from hybrid_extraction import Deadline, DocumentRef
from hybrid_extraction.backends import MistralOCRGateway, create_gateway
from hybrid_extraction.errors import DeadlineExceededError, OCRError
from hybrid_extraction.models import OCRPage

POST = "hybrid_extraction.backends.mistral.requests.post"


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload if payload is not None else {"pages": []}
    return response


@pytest.fixture
def gateway():
    return MistralOCRGateway(api_key="test-key", url="https://ocr.example.com/v1/ocr")


@pytest.fixture
def remote_document(tmp_path):
    return DocumentRef(path=tmp_path / "doc.pdf", url="https://files.example.com/doc.pdf")


@pytest.mark.unit
class TestMistralGatewayInit:
    """Configuration and availability."""

    def test_available_with_key(self, gateway):
        assert gateway.is_available() is True
        assert gateway.default_model == "mistral-ocr-latest"
        assert gateway.name == "Mistral"

    def test_unavailable_without_key(self, monkeypatch):
        monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
        assert MistralOCRGateway().is_available() is False

    def test_env_configuration(self, monkeypatch):
        monkeypatch.setenv("MISTRAL_API_KEY", "env-key")
        monkeypatch.setenv("DEFAULT_OCR_MODEL", "mistral-ocr-2505")

        gateway = MistralOCRGateway()

        assert gateway.api_key == "env-key"
        assert gateway.default_model == "mistral-ocr-2505"

    def test_create_gateway_prefers_mistral(self):
        assert isinstance(create_gateway(api_key="k"), MistralOCRGateway)


@pytest.mark.unit
class TestMistralRunOCR:
    """Request body and response parsing."""

    def test_request_body(self, gateway, remote_document):
        with patch(POST, return_value=_response(payload={"pages": []})) as post:
            gateway.run_ocr(
                remote_document,
                model="mistral-ocr-latest",
                pages=[4, 0, 1, 1],
                extract_header=True,
            )

        kwargs = post.call_args.kwargs
        assert post.call_args.args[0] == "https://ocr.example.com/v1/ocr"
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["json"] == {
            "model": "mistral-ocr-latest",
            "document": {
                "type": "document_url",
                "document_url": "https://files.example.com/doc.pdf",
            },
            "extract_header": True,
            "extract_footer": False,
            "pages": [0, 1, 4],
        }

    def test_empty_pages_omitted(self, gateway, remote_document):
        with patch(POST, return_value=_response()) as post:
            gateway.run_ocr(remote_document)

        assert "pages" not in post.call_args.kwargs["json"]
        assert post.call_args.kwargs["json"]["model"] == "mistral-ocr-latest"

    def test_local_document_inlined(self, gateway, tmp_path):
        pdf = tmp_path / "local.pdf"
        pdf.write_bytes(b"%PDF-1.4 test")

        with patch(POST, return_value=_response()) as post:
            gateway.run_ocr(DocumentRef(path=pdf), pages=[0])

        url = post.call_args.kwargs["json"]["document"]["document_url"]
        assert url == "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 test").decode()

    def test_parses_pages(self, gateway, remote_document):
        payload = {
            "pages": [
                {"index": 0, "markdown": "# Page one"},
                {"index": 3, "markdown": None},
            ],
            "model": "mistral-ocr-latest",
        }
        with patch(POST, return_value=_response(payload=payload)):
            pages = gateway.run_ocr(remote_document, pages=[0, 3])

        assert pages == [OCRPage(index=0, markdown="# Page one"), OCRPage(index=3, markdown="")]

    def test_image_request(self, gateway):
        with patch(POST, return_value=_response(payload={"pages": [{"index": 0, "markdown": "x"}]})) as post:
            pages = gateway.run_image_ocr("https://x/receipt.png")

        assert post.call_args.kwargs["json"]["document"] == {
            "type": "image_url",
            "image_url": "https://x/receipt.png",
        }
        assert pages[0].markdown == "x"

    def test_deadline_bounds_timeout(self, gateway, remote_document):
        with patch(POST, return_value=_response()) as post:
            gateway.run_ocr(remote_document, deadline=Deadline(5.0))

        assert 0 < post.call_args.kwargs["timeout"] <= 5.0


@pytest.mark.unit
class TestMistralErrors:
    """Failures map to OCRError or DeadlineExceededError."""

    def test_missing_key(self, monkeypatch, remote_document):
        monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
        with patch(POST) as post:
            with pytest.raises(OCRError, match="MISTRAL_API_KEY"):
                MistralOCRGateway().run_ocr(remote_document)
        post.assert_not_called()

    def test_http_error(self, gateway, remote_document):
        with patch(POST, return_value=_response(status_code=500, text="upstream exploded")):
            with pytest.raises(OCRError, match="500: upstream exploded"):
                gateway.run_ocr(remote_document)

    def test_malformed_response(self, gateway, remote_document):
        with patch(POST, return_value=_response(payload={"unexpected": True})):
            with pytest.raises(OCRError, match="malformed"):
                gateway.run_ocr(remote_document)

    def test_invalid_json(self, gateway, remote_document):
        response = _response()
        response.json.side_effect = ValueError("not json")
        with patch(POST, return_value=response):
            with pytest.raises(OCRError, match="malformed"):
                gateway.run_ocr(remote_document)

    def test_connection_error(self, gateway, remote_document):
        with patch(POST, side_effect=requests.ConnectionError("refused")):
            with pytest.raises(OCRError, match="request failed"):
                gateway.run_ocr(remote_document)

    def test_timeout_without_deadline(self, gateway, remote_document):
        with patch(POST, side_effect=requests.Timeout()):
            with pytest.raises(OCRError, match="timed out"):
                gateway.run_ocr(remote_document)

    def test_expired_deadline(self, gateway, remote_document):
        with patch(POST) as post:
            with pytest.raises(DeadlineExceededError):
                gateway.run_ocr(remote_document, deadline=Deadline(0.0))
        post.assert_not_called()

    def test_unreadable_local_document(self, gateway):
        with pytest.raises(OCRError, match="cannot read"):
            gateway.run_ocr(DocumentRef(path=Path("/nonexistent/doc.pdf")))
