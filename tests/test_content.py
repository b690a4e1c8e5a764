import base64

import httpx
import pytest
from unittest.mock import mock_open, patch

from polyllm.exceptions import ResourceFetchError, UnsupportedDialectOperation
from polyllm.fetch import fetch_resource, guess_media_type
from polyllm.providers.anthropic import AnthropicProvider
from polyllm.providers.google import GoogleProvider
from polyllm.providers.openai import OpenAIProvider
from polyllm.types import ChatParams, File, Image, Text, UserMessage


def _ok(url: str, content: bytes, content_type: str) -> httpx.Response:
    return httpx.Response(200, content=content, headers={"content-type": content_type}, request=httpx.Request("GET", url))


# --- Image ---------------------------------------------------------------------

def test_image_requires_a_source():
    with pytest.raises(ValueError):
        Image()


def test_image_from_path():
    with patch("builtins.open", mock_open(read_data=b"fake_image_data")):
        with patch("pathlib.Path.exists", return_value=True):
            img = Image.from_path("test.png")

    assert img.base64_data == "ZmFrZV9pbWFnZV9kYXRh"
    assert img.media_type == "image/png"


def test_image_from_url_does_not_fetch():
    with patch("httpx.get") as mock_get:
        img = Image.from_url("http://example.com/cat.png")

    mock_get.assert_not_called()
    assert not img.is_inline
    assert img.media_type == "image/png"


def test_image_fetch_materializes_inline_copy():
    url = "http://example.com/img.jpg"
    with patch("httpx.get", return_value=_ok(url, b"fake_url_data", "image/jpeg")):
        fetched = Image.from_url(url).fetch()

    assert fetched.is_inline
    assert fetched.base64_data == "ZmFrZV91cmxfZGF0YQ=="
    assert fetched.media_type == "image/jpeg"


def test_image_fetch_failure_raises_resource_error():
    url = "http://example.com/missing.jpg"
    response = httpx.Response(404, request=httpx.Request("GET", url))
    with patch("httpx.get", return_value=response):
        with pytest.raises(ResourceFetchError) as exc_info:
            Image.from_url(url).fetch()

    assert exc_info.value.url == url
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


def test_openai_renders_inline_image_as_data_uri():
    img = Image.from_base64("abc", media_type="image/png")
    assert img.render_for("openai") == {
        "type": "image_url",
        "image_url": {"url": "data:image/png;base64,abc"},
    }


def test_openai_renders_remote_image_url_and_detail():
    img = Image.from_url("https://example.com/a.jpg", detail="low")
    rendered = img.render_for("openai")
    assert rendered["image_url"] == {"url": "https://example.com/a.jpg", "detail": "low"}


@pytest.mark.parametrize("dialect", ["anthropic", "google"])
def test_url_only_image_needs_fetch_for_inline_dialects(dialect):
    img = Image.from_url("https://example.com/a.jpg")
    with pytest.raises(UnsupportedDialectOperation) as exc_info:
        img.render_for(dialect)
    assert exc_info.value.dialect == dialect


def test_unknown_dialect_renders_like_openai():
    img = Image.from_base64("abc", media_type="image/png")
    assert img.render_for("some-new-vendor") == img.render_for("openai")


# --- File ----------------------------------------------------------------------

def test_file_renderings():
    doc = File.from_bytes(b"%PDF-1.4", media_type="application/pdf", filename="report.pdf")
    b64 = base64.b64encode(b"%PDF-1.4").decode("utf-8")

    assert doc.render_for("openai") == {
        "type": "file",
        "file": {"filename": "report.pdf", "file_data": f"data:application/pdf;base64,{b64}"},
    }
    assert doc.render_for("anthropic") == {
        "type": "document",
        "source": {"type": "base64", "media_type": "application/pdf", "data": b64},
    }
    assert doc.render_for("google") == {"inlineData": {"mimeType": "application/pdf", "data": b64}}


def test_file_from_url_fetches_explicitly():
    url = "https://example.com/docs/terms.pdf"
    with patch("httpx.get", return_value=_ok(url, b"data", "application/pdf; charset=binary")):
        doc = File.from_url(url)

    assert doc.filename == "terms.pdf"
    assert doc.media_type == "application/pdf"


# --- fetch helpers ---------------------------------------------------------------

def test_fetch_falls_back_to_extension_media_type():
    url = "https://example.com/photo.png"
    with patch("httpx.get", return_value=_ok(url, b"x", "application/octet-stream")):
        content, media_type = fetch_resource(url)

    assert content == b"x"
    assert media_type == "image/png"


def test_fetch_rejects_non_http_urls():
    with pytest.raises(ResourceFetchError):
        fetch_resource("file:///etc/passwd")


def test_guess_media_type_default():
    assert guess_media_type("blob", default="image/jpeg") == "image/jpeg"


# --- Provider payloads -------------------------------------------------------------

def _params(model, *messages):
    return ChatParams(model=model, messages=list(messages))


def test_openai_vision_format():
    p = OpenAIProvider(api_key="sk-test")
    msg = UserMessage(content=[Text(text="Look"), Image(base64_data="abc", media_type="image/png")])

    _, data = p.build_request(_params("gpt-4o", msg))

    content = data["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "Look"}
    assert content[1]["image_url"]["url"] == "data:image/png;base64,abc"


def test_anthropic_vision_format():
    p = AnthropicProvider(api_key="sk-test")
    msg = UserMessage(content=["Look", Image(base64_data="abc", media_type="image/jpeg")])

    _, data = p.build_request(_params("claude-3-opus", msg))

    content = data["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "Look"}
    assert content[1]["source"] == {"type": "base64", "media_type": "image/jpeg", "data": "abc"}


def test_google_vision_format():
    p = GoogleProvider(api_key="key")
    msg = UserMessage.with_image("Look", Image(base64_data="abc", media_type="image/jpeg"))

    _, data = p.build_request(_params("gemini-1.5-pro", msg))

    parts = data["contents"][0]["parts"]
    assert parts[0] == {"text": "Look"}
    assert parts[1] == {"inlineData": {"mimeType": "image/jpeg", "data": "abc"}}
