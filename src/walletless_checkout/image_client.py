"""Async HTTP client for the Stability AI text-to-image REST API.

Used to render a collectible receipt image for a confirmed purchase.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class ImageGenerationError(Exception):
    """Base exception for receipt image rendering.

    ``retryable`` marks failures where the same request may succeed later.
    """

    retryable = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ImageAuthError(ImageGenerationError):
    """API key missing locally, or rejected upstream (401/403)."""


class ImageValidationError(ImageGenerationError):
    """Prompt or generation parameters refused (400/413/422)."""


class ImageQuotaError(ImageGenerationError):
    """Rate limited or out of credits (429)."""

    retryable = True


class ImageServerError(ImageGenerationError):
    """Upstream failure (5xx)."""

    retryable = True


class ImageTransportError(ImageGenerationError):
    """The request never produced an HTTP response."""

    retryable = True


class ImageConnectionError(ImageTransportError):
    """Could not connect (DNS, refused, TLS)."""


class ImageTimeoutError(ImageTransportError):
    """Connect, read, write or pool timeout."""


class ImageResponseError(ImageGenerationError):
    """A success status with a body that is not a JSON object."""


def _error_for_status(status: int, body: str) -> ImageGenerationError:
    if status in (401, 403):
        exc_cls: type[ImageGenerationError] = ImageAuthError
    elif status == 429:
        exc_cls = ImageQuotaError
    elif status >= 500:
        exc_cls = ImageServerError
    elif status in (400, 413, 422):
        exc_cls = ImageValidationError
    else:
        exc_cls = ImageGenerationError
    return exc_cls(body or f"HTTP {status}", status_code=status)


_ENGINE_ID = "stable-diffusion-xl-1024-v1-0"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GeneratedImage:
    base64: str
    prompt: str
    timestamp: str

    @property
    def data_url(self) -> str:
        return f"data:image/png;base64,{self.base64}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "base64": self.base64,
            "dataUrl": self.data_url,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
        }


def build_prompt(product_name: str, style: str = "futuristic", mood: str = "dark") -> str:
    return (
        f"A {mood}, {style} collectible digital receipt artwork celebrating the "
        f"purchase of '{product_name}', neon accents, high detail, no text"
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ImageClient:
    """Async client for Stability AI's v1 generation API.

    Constructor accepts explicit params - no env-var loading.
    """

    def __init__(self, api_key: str | None, host: str = "https://api.stability.ai") -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=host.rstrip("/") + "/v1",
            headers={
                "Authorization": f"Bearer {api_key or ''}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(connect=5.0, read=60.0, write=10.0, pool=5.0),
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _post_json(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object.

        Every failure surfaces as an ``ImageGenerationError`` subclass:
        transport errors, error statuses, and bodies that are not a JSON
        object.
        """
        try:
            response = await self._client.request("POST", endpoint, json=payload)
        except httpx.ConnectError as exc:
            raise ImageConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise ImageTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ImageTransportError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise _error_for_status(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise ImageResponseError(
                "Generation API returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise ImageResponseError(
                f"Generation API returned {type(data).__name__}, expected an object",
                status_code=response.status_code,
            )
        return data

    async def generate_image(
        self,
        product_name: str,
        style: str = "futuristic",
        mood: str = "dark",
    ) -> GeneratedImage:
        """POST /generation/{engine}/text-to-image - render one image."""
        if not self.configured:
            raise ImageAuthError("Stability AI API key not configured")

        prompt = build_prompt(product_name, style, mood)
        payload: dict[str, Any] = {
            "text_prompts": [{"text": prompt, "weight": 1}],
            "cfg_scale": 7,
            "height": 1024,
            "width": 1024,
            "samples": 1,
            "steps": 30,
        }
        data = await self._post_json(f"/generation/{_ENGINE_ID}/text-to-image", payload)
        artifacts = data.get("artifacts") or []
        first = artifacts[0] if isinstance(artifacts, list) and artifacts else None
        if not isinstance(first, dict) or not first.get("base64"):
            raise ImageGenerationError("No image returned by generation API")

        return GeneratedImage(
            base64=first["base64"],
            prompt=prompt,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> ImageClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
