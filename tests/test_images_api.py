"""
End-to-end tests for /api/index with a mocked upstream.
"""

import hashlib

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.codecs import Encoders
from app.core.dimensions import OutputFormat
from app.main import create_app

from .imaging import make_image_bytes

IMAGE_URL = "http://images.example.com/photo.jpg"


class BloatingEncoder:
    format = OutputFormat.JPEG

    def encode(self, image, quality):
        return b"\xff" * (10 * 1024 * 1024)


def _upstream(routes):
    calls = []

    def handler(request):
        calls.append(request)
        status, content_type, body = routes[str(request.url)]
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, headers=headers, content=body)

    return httpx.MockTransport(handler), calls


@pytest.fixture
def make_client(config, jpeg_only):
    def _make(routes, encoders=None):
        transport, calls = _upstream(routes)
        app = create_app(config, transport=transport, encoders=encoders or jpeg_only)
        return TestClient(app), calls

    return _make


class TestCompressEndpoint:
    def test_large_jpeg_is_transcoded(self, make_client):
        body = make_image_bytes(400, 400, "JPEG", quality=95)
        client, _ = make_client({IMAGE_URL: (200, "image/jpeg", body)})
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL, "l": "40", "jpeg": "1"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["x-compressed-by"] == "bandwidth-hero"
        assert int(response.headers["x-bytes-saved"]) > 0
        assert len(response.content) <= len(body)
        assert "x-bypass-reason" not in response.headers
        assert response.headers["x-url-hash"] == hashlib.md5(IMAGE_URL.encode()).hexdigest()
        assert "no-store" in response.headers["cache-control"]
        assert "must-revalidate" in response.headers["cache-control"]

    def test_avif_family_request(self, make_client):
        from app.core.codecs import build_encoders

        body = make_image_bytes(400, 400, "JPEG", quality=95)
        client, _ = make_client({IMAGE_URL: (200, "image/jpeg", body)}, encoders=build_encoders())
        with client:
            response = client.get("/api/index/", params={"url": IMAGE_URL})

        assert response.status_code == 200
        assert response.headers["content-type"] in ("image/avif", "image/jpeg")
        assert len(response.content) <= len(body)

    def test_small_image_is_bypassed_verbatim(self, make_client):
        body = make_image_bytes(20, 20, "JPEG", quality=80)
        assert len(body) < 10240
        client, _ = make_client({IMAGE_URL: (200, "image/jpeg", body)})
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL})

        assert response.status_code == 200
        assert response.headers["x-bypass-reason"] == "already_small"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.content == body
        assert "x-compressed-by" not in response.headers
        assert "x-bytes-saved" not in response.headers
        assert "x-url-hash" in response.headers

    def test_svg_is_bypassed(self, make_client):
        body = b"<svg xmlns='http://www.w3.org/2000/svg'>" + b" " * 20000 + b"</svg>"
        client, _ = make_client({IMAGE_URL: (200, "image/svg+xml", body)})
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL})

        assert response.headers["x-bypass-reason"] == "criteria_not_met"
        assert response.content == body

    def test_larger_output_returns_original(self, make_client):
        body = make_image_bytes(400, 400, "JPEG", quality=95)
        bloat = BloatingEncoder()
        client, _ = make_client(
            {IMAGE_URL: (200, "image/jpeg", body)},
            encoders=Encoders(jpeg=bloat, avif=bloat),
        )
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL})

        assert response.status_code == 200
        assert response.content == body
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["x-bytes-saved"] == "0"


class TestCompressErrors:
    def test_missing_url(self, make_client):
        client, calls = make_client({})
        with client:
            response = client.get("/api/index")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing query parameters"}
        assert calls == []

    def test_invalid_url(self, make_client):
        client, _ = make_client({})
        with client:
            response = client.get("/api/index", params={"url": "not a url"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid URL"

    def test_upstream_status_error(self, make_client):
        client, calls = make_client({IMAGE_URL: (404, "text/html", b"missing")})
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL})
        assert response.status_code == 502
        assert response.json() == {"error": "Upstream fetch failed", "url": IMAGE_URL}
        assert len(calls) == 1

    def test_upstream_transport_error(self, config, jpeg_only):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        app = create_app(config, transport=httpx.MockTransport(handler), encoders=jpeg_only)
        with TestClient(app) as client:
            response = client.get("/api/index", params={"url": IMAGE_URL})
        assert response.status_code == 502
        assert response.json() == {"error": "Failed to fetch image", "url": IMAGE_URL}
        assert len(calls) == 2

    def test_undecodable_image(self, make_client):
        client, _ = make_client({IMAGE_URL: (200, "image/jpeg", b"\x00" * 20000)})
        with client:
            response = client.get("/api/index", params={"url": IMAGE_URL})
        assert response.status_code == 500
        assert response.json() == {"error": "Compression failed", "url": IMAGE_URL}

    def test_redirect_loop_is_upstream_failure(self, config, jpeg_only):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(302, headers={"location": IMAGE_URL})

        app = create_app(config, transport=httpx.MockTransport(handler), encoders=jpeg_only)
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/index", params={"url": IMAGE_URL})
        assert response.status_code == 502
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"error": "Failed to fetch image", "url": IMAGE_URL}
        assert len(calls) > 1

    def test_unexpected_error_returns_json(self, config):
        class BrokenEncoder:
            format = OutputFormat.JPEG

            def encode(self, image, quality):
                raise RuntimeError("encoder crashed")

        body = make_image_bytes(400, 400, "JPEG", quality=95)
        transport, _ = _upstream({IMAGE_URL: (200, "image/jpeg", body)})
        broken = BrokenEncoder()
        app = create_app(config, transport=transport, encoders=Encoders(jpeg=broken, avif=broken))
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/index", params={"url": IMAGE_URL, "jpeg": "1"})
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


def test_health(make_client):
    client, _ = make_client({})
    with client:
        for path in ("/health", "/health/"):
            response = client.get(path)
            assert response.status_code == 200
            assert response.text == "bandwidth-hero-proxy"
