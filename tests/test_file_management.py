from io import BytesIO
from unittest import mock

import pytest
import requests
from werkzeug.datastructures import FileStorage

from errors import NetworkError, ValidationError
from services import file_management
from services.file_management import fetch_remote_image, format_size, read_upload, validate_url


@pytest.mark.parametrize("url", [
    "ftp://example.com/image.gif",
    "http://localhost/image.gif",
    "http://127.0.0.1/image.gif",
    "http://10.0.0.5/image.gif",
    "http://192.168.1.1/image.gif",
    "http://[::1]/image.gif",
    "http://user@example.com/image.gif",
    "",
])
def test_validate_url_rejects_unsafe(url):
    with pytest.raises(ValidationError):
        validate_url(url)


def test_validate_url_accepts_public_ip():
    assert validate_url("https://93.184.216.34/image.gif") == "https://93.184.216.34/image.gif"


def test_validate_url_rejects_hostname_resolving_to_private(monkeypatch):
    monkeypatch.setattr(file_management.socket, "getaddrinfo",
                        lambda host, port: [(None, None, None, "", ("10.1.2.3", 0))])
    with pytest.raises(ValidationError):
        validate_url("https://internal.example.com/a.gif")


class FakeResponse:
    def __init__(self, content, headers=None, status_code=200):
        self.content = content
        self.headers = headers or {}
        self.status_code = status_code
        self.closed = False

    @property
    def is_redirect(self):
        return "Location" in self.headers and self.status_code in (301, 302, 303, 307, 308)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


@pytest.fixture
def public_dns(monkeypatch):
    monkeypatch.setattr(file_management.socket, "getaddrinfo",
                        lambda host, port: [(None, None, None, "", ("93.184.216.34", 0))])


def test_fetch_remote_image(public_dns, gif_bytes):
    with mock.patch.object(file_management.requests, "get",
                           return_value=FakeResponse(gif_bytes, {"Content-Type": "image/gif"})):
        assert fetch_remote_image("https://cdn.example.com/a.gif") == gif_bytes


def test_fetch_rejects_non_images(public_dns):
    with mock.patch.object(file_management.requests, "get",
                           return_value=FakeResponse(b"<html>", {"Content-Type": "text/html"})):
        with pytest.raises(ValidationError):
            fetch_remote_image("https://cdn.example.com/a.gif")


def test_fetch_enforces_size_limit(public_dns):
    with mock.patch.object(file_management.requests, "get",
                           return_value=FakeResponse(b"x" * 100, {"Content-Type": "image/png"})):
        with pytest.raises(ValidationError):
            fetch_remote_image("https://cdn.example.com/a.png", max_size=10)


def test_fetch_network_error_is_client_error(public_dns):
    with mock.patch.object(file_management.requests, "get",
                           side_effect=requests.ConnectionError("refused")):
        with pytest.raises(NetworkError) as exc_info:
            fetch_remote_image("https://cdn.example.com/a.png")
    assert exc_info.value.status_code == 400


def redirect_to(location, status_code=302):
    return FakeResponse(b"", {"Location": location}, status_code=status_code)


def test_fetch_follows_public_redirect(public_dns, gif_bytes):
    hop = redirect_to("/images/b.gif", status_code=301)
    responses = [hop, FakeResponse(gif_bytes, {"Content-Type": "image/gif"})]
    with mock.patch.object(file_management.requests, "get", side_effect=responses) as get:
        assert fetch_remote_image("https://cdn.example.com/a.gif") == gif_bytes

    # Location relativa: se resuelve contra la URL del salto anterior
    assert get.call_args_list[1].args[0] == "https://cdn.example.com/images/b.gif"
    assert all(call.kwargs["allow_redirects"] is False for call in get.call_args_list)
    assert hop.closed


@pytest.mark.parametrize("location", [
    "http://127.0.0.1/admin.gif",
    "http://localhost:8080/a.gif",
    "http://169.254.169.254/latest/meta-data/",
    "file:///etc/passwd",
])
def test_fetch_rejects_redirect_to_internal_host(public_dns, location):
    with mock.patch.object(file_management.requests, "get",
                           side_effect=[redirect_to(location)]) as get:
        with pytest.raises(ValidationError):
            fetch_remote_image("https://cdn.example.com/a.gif")

    # El destino interno nunca llega a pedirse
    assert get.call_count == 1


def test_fetch_rejects_redirect_loops(public_dns):
    hops = [redirect_to(f"https://cdn.example.com/{i}.gif") for i in range(file_management.MAX_REDIRECTS + 1)]
    with mock.patch.object(file_management.requests, "get", side_effect=hops) as get:
        with pytest.raises(ValidationError) as exc_info:
            fetch_remote_image("https://cdn.example.com/a.gif")

    assert exc_info.value.error_code == "too_many_redirects"
    assert get.call_count == file_management.MAX_REDIRECTS + 1
    assert all(hop.closed for hop in hops)


def test_read_upload():
    assert read_upload(None) is None
    assert read_upload(FileStorage(BytesIO(b""), filename="", name="inputImage")) is None
    assert read_upload(FileStorage(BytesIO(b"GIF89a"), filename="a.gif", name="inputImage")) == b"GIF89a"


def test_read_upload_too_large():
    with pytest.raises(ValidationError):
        read_upload(FileStorage(BytesIO(b"x" * 20), filename="a.gif", name="inputImage"), max_size=10)


def test_format_size():
    assert format_size(512) == "512.00 B"
    assert format_size(2048) == "2.00 KB"
