"""Image generation: upstream call, URL extraction and placeholder tokens.

Image providers answer in several incompatible shapes. ``extract_image_url``
runs an ordered list of shape matchers over the response body and returns the
first hit as an ``ExtractedImage`` tagged with the shape that matched.

Generated images are often multi-megabyte data URIs. They are never sent back
to the model: the tool hands the model an opaque placeholder token instead,
and ``ImagePlaceholderRegistry.substitute`` swaps the real value in once the
tool loop has finished.
"""

import re
import uuid
import logging
from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel

import requests

from llm.normalizer import extract_message

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(r"data:image/[\w.+-]+;base64,[A-Za-z0-9+/=]+")
HTTP_URL_PATTERN = re.compile(r"https?://[^\s)\]\"'<>]+")
MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\(\s*([^)\s]+)[^)]*\)")
BARE_URL_PATTERN = re.compile(r"\bwww\.[^\s)\]\"'<>]+")

DEFAULT_MIME_TYPE = "image/png"

ImageShape = Literal["message_images", "data_array", "candidates_parts", "message_content"]


class ExtractedImage(BaseModel):
    """An image reference found in a provider response."""
    shape: ImageShape
    url: str  # http(s) URL or data URI


class ImageGenerationError(Exception):
    """The image API failed or returned nothing usable."""


def _data_uri(data: str, mime_type: Optional[str] = None) -> str:
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{data}"


def _url_from_entry(entry: Any) -> Optional[str]:
    """string | {image_url:{url}} | {image_url:"..."} | {url} | {b64_json}"""
    if isinstance(entry, str) and entry:
        return entry
    if not isinstance(entry, dict):
        return None

    image_url = entry.get("image_url")
    if isinstance(image_url, dict) and isinstance(image_url.get("url"), str):
        return image_url["url"]
    if isinstance(image_url, str) and image_url:
        return image_url
    if isinstance(entry.get("url"), str) and entry["url"]:
        return entry["url"]
    if isinstance(entry.get("b64_json"), str) and entry["b64_json"]:
        return _data_uri(entry["b64_json"])
    return None


def _url_from_inline_data(part: Any) -> Optional[str]:
    if not isinstance(part, dict):
        return None
    inline = part.get("inline_data") or part.get("inlineData")
    if not isinstance(inline, dict) or not isinstance(inline.get("data"), str):
        return None
    mime_type = inline.get("mime_type") or inline.get("mimeType")
    return _data_uri(inline["data"], mime_type)


def _match_message_images(body: Dict[str, Any]) -> Optional[str]:
    images = extract_message(body).get("images")
    if not isinstance(images, list):
        return None
    for entry in images:
        url = _url_from_entry(entry)
        if url:
            return url
    return None


def _match_data_array(body: Dict[str, Any]) -> Optional[str]:
    entries = body.get("data")
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict):
            url = _url_from_entry({k: entry.get(k) for k in ("url", "b64_json")})
            if url:
                return url
    return None


def _match_candidates_parts(body: Dict[str, Any]) -> Optional[str]:
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return None
    for part in parts:
        url = _url_from_inline_data(part)
        if url:
            return url
    return None


def _url_from_text(text: str) -> Optional[str]:
    for pattern in (DATA_URI_PATTERN, HTTP_URL_PATTERN):
        match = pattern.search(text)
        if match:
            return match.group(0)

    match = MARKDOWN_IMAGE_PATTERN.search(text)
    if match:
        return match.group(1)

    match = BARE_URL_PATTERN.search(text)
    if match:
        return f"https://{match.group(0)}"
    return None


def _url_from_content_part(part: Any) -> Optional[str]:
    if not isinstance(part, dict):
        return None

    image_url = part.get("image_url")
    if isinstance(image_url, dict) and isinstance(image_url.get("url"), str):
        return image_url["url"]
    if isinstance(image_url, str) and image_url:
        return image_url
    if isinstance(part.get("url"), str) and part["url"]:
        return part["url"]

    source = part.get("source")
    if isinstance(source, dict) and isinstance(source.get("data"), str):
        return _data_uri(source["data"], source.get("media_type"))

    return _url_from_inline_data(part)


def _match_message_content(body: Dict[str, Any]) -> Optional[str]:
    content = extract_message(body).get("content")
    if isinstance(content, str):
        return _url_from_text(content)
    if isinstance(content, list):
        for part in content:
            url = _url_from_content_part(part)
            if url:
                return url
    return None


IMAGE_SHAPE_MATCHERS = (
    ("message_images", _match_message_images),
    ("data_array", _match_data_array),
    ("candidates_parts", _match_candidates_parts),
    ("message_content", _match_message_content),
)


def extract_image_url(body: Any) -> Optional[ExtractedImage]:
    """Probe the known image response shapes in order; None if none match."""
    if not isinstance(body, dict):
        return None

    for shape, matcher in IMAGE_SHAPE_MATCHERS:
        url = matcher(body)
        if url:
            return ExtractedImage(shape=shape, url=url)
    return None


class ImageGenerationClient:
    """Calls the image generation API in chat or images mode."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://openrouter.ai/api/v1",
        mode: str = "chat",
        app_url: str = "http://localhost:8000",
        app_title: str = "MentorAI",
        timeout: Optional[float] = 120.0
    ):
        """
        Initialize image client.

        Args:
            api_key: Bearer key for the image API
            base_url: API root
            mode: "chat" sends a chat completion with a modalities hint,
                "images" uses the dedicated images/generations endpoint
            app_url: Sent as HTTP-Referer
            app_title: Sent as X-Title
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.mode = mode
        self.app_url = app_url
        self.app_title = app_title
        self.timeout = timeout

    def _get_headers(self) -> dict:
        """Build request headers."""
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }

    def generate(self, prompt: str, model: str) -> ExtractedImage:
        """
        Generate one image.

        Raises:
            ImageGenerationError: Upstream failure or no image in the response
        """
        if self.mode == "images":
            url = f"{self.base_url}/images/generations"
            payload: Dict[str, Any] = {"model": model, "prompt": prompt, "n": 1}
        else:
            url = f"{self.base_url}/chat/completions"
            payload = {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "modalities": ["image", "text"],
            }

        try:
            response = requests.post(
                url,
                json=payload,
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ImageGenerationError(f"Image API request failed: {e}")

        if not response.ok:
            raise ImageGenerationError(f"Image API {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError:
            raise ImageGenerationError("Image API returned invalid JSON")

        image = extract_image_url(body)
        if image is None:
            raise ImageGenerationError("no image URL found")

        logger.info(f"Image generated ({image.shape}, {len(image.url)} chars)")
        return image


class ImagePlaceholderRegistry:
    """Maps opaque placeholder tokens to generated image URLs for one request."""

    TOKEN_PREFIX = "IMAGE_PLACEHOLDER_"

    def __init__(self):
        self._images: Dict[str, str] = {}

    def register(self, url: str) -> str:
        """Store ``url`` and return its placeholder token."""
        token = f"{self.TOKEN_PREFIX}{uuid.uuid4().hex[:16]}"
        self._images[token] = url
        return token

    def substitute(self, text: str) -> str:
        """Replace every known token in ``text`` by its URL."""
        for token, url in self._images.items():
            text = text.replace(token, url)
        return text

    def __len__(self) -> int:
        return len(self._images)
