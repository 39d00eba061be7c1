"""
Gemini integration for outdoor-space image editing.

- Editing: Gemini 2.5 Flash Image (nano-banana) via REST generateContent
- Variations: three preset styling directions, run one after another
"""

import logging
from typing import Callable, Optional

import httpx
from pydantic import BaseModel

from . import config
from .errors import ServiceContentError, TransportError
from .timing import BackoffPolicy

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.9,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 8192,
}

NO_IMAGE_MESSAGE = "Using original image (Gemini did not return an image)"

# Styling directions appended to the user's prompt, one per variation
VARIATION_STYLES = [
    "Add luxury stone pavers, modern outdoor furniture, and ambient lighting. Golden hour lighting.",
    "Add a fire pit area, comfortable seating, and premium hardscaping with natural stone. Evening atmosphere.",
    "Create a modern minimalist design with clean lines, water features, and high-end materials.",
]


class EditResult(BaseModel):
    success: bool
    image_base64: str
    message: str
    prompt: str = ""


def build_variation_prompts(base_prompt: str) -> list[str]:
    return [f"Transform this outdoor space: {base_prompt}. {style}" for style in VARIATION_STYLES]


def _extract_image(result: dict) -> Optional[dict]:
    """Return the first inline image part of a generateContent response."""
    candidates = result.get("candidates") or []
    if not candidates:
        return None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    for i, part in enumerate(parts):
        # REST responses use camelCase, older previews snake_case
        inline = part.get("inline_data") or part.get("inlineData")
        if inline and inline.get("data"):
            return inline
        if part.get("text"):
            logger.debug(f"Gemini part {i} is text: {part['text'][:200]}")
    return None


class ImageEditor:
    """
    Calls the Gemini image model once per prompt.

    Failures never propagate: the caller always gets an EditResult whose
    image is usable, falling back to the source image.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        policy: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120,
    ):
        self.api_key = config.GEMINI_API_KEY if api_key is None else api_key
        self.endpoint = endpoint or config.GEMINI_IMAGE_ENDPOINT
        self.policy = policy or BackoffPolicy()
        self._transport = transport
        self._timeout = timeout

    async def _generate_content(self, body: dict) -> dict:
        if not self.api_key:
            raise TransportError("GEMINI_API_KEY not set")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self.endpoint, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"Gemini request failed: {e}") from e

        if resp.status_code >= 400:
            raise TransportError(f"API error: {resp.status_code} - {resp.text[:500]}")

        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"Gemini returned invalid JSON: {resp.text[:200]}") from e

    async def edit_image(self, image_base64: str, prompt: str, mime_type: str = "image/png") -> EditResult:
        """
        Send one editing instruction with the source image.

        A response without image data still counts as a success; the
        original image is handed back so the pipeline has something to show.
        """
        body = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inline_data": {"mime_type": mime_type, "data": image_base64}},
                ]
            }],
            "generationConfig": GENERATION_CONFIG,
        }

        try:
            result = await self._generate_content(body)
            image = _extract_image(result)
            if image is None:
                raise ServiceContentError(NO_IMAGE_MESSAGE)
        except ServiceContentError as e:
            logger.warning(f"No image in Gemini response, using original image ({prompt[:60]})")
            return EditResult(success=True, image_base64=image_base64, message=str(e), prompt=prompt)
        except TransportError as e:
            logger.error(f"Gemini generation error: {e}")
            return EditResult(success=False, image_base64=image_base64, message=str(e), prompt=prompt)
        except (AttributeError, TypeError) as e:
            logger.error(f"Unexpected Gemini response shape: {e}")
            message = f"Unexpected Gemini response: {e}"
            return EditResult(success=False, image_base64=image_base64, message=message, prompt=prompt)

        logger.info(f"Gemini image generated ({len(image['data'])} b64 chars)")
        return EditResult(
            success=True,
            image_base64=image["data"],
            message="Image successfully generated with Gemini 2.5 Flash Image",
            prompt=prompt,
        )

    async def generate_variations(
        self,
        image_base64: str,
        base_prompt: str,
        count: int = 3,
        mime_type: str = "image/png",
        on_result: Optional[Callable[[int, EditResult], None]] = None,
    ) -> list[EditResult]:
        """
        Run the styling prompts sequentially, pausing between calls.

        `count` is capped at the number of styling directions. `on_result`
        is called with (index, result) as soon as each edit finishes.
        """
        prompts = build_variation_prompts(base_prompt)[:max(count, 0)]
        results = []

        for i, prompt in enumerate(prompts):
            logger.info(f"Generating variation {i + 1}/{len(prompts)}...")
            result = await self.edit_image(image_base64, prompt, mime_type)
            results.append(result)
            if on_result:
                on_result(i, result)
            await self.policy.sleep(self.policy.variation_delay)

        return results
