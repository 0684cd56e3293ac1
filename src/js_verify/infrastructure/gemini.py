"""Hosted multimodal model client (Gemini generateContent API).

The photo is fetched, inlined as base64 and sent with the instruction text.
The model is asked for a small JSON object; it sometimes wraps it in a
markdown fence, so the first {...} block in the reply is parsed.
"""

import base64
import json
import logging
import re
from typing import Any

import httpx

from config.settings import settings
from src.js_common.errors import VisionUnavailableError
from src.js_verify.domain.models import VisionJudgment

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def parse_judgment(text: str) -> VisionJudgment:
    """Turn the model's reply into a VisionJudgment; unparseable -> unknown/0."""
    match = _JSON_BLOCK.search(text or "")
    if match is None:
        return VisionJudgment(verdict="unknown", confidence=0.0, reason=(text or "")[:200])
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return VisionJudgment(verdict="unknown", confidence=0.0, reason=text[:200])
    if not isinstance(data, dict):
        return VisionJudgment(verdict="unknown", confidence=0.0, reason=text[:200])

    try:
        confidence = float(data.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    if confidence > 1:
        confidence /= 100
    confidence = min(max(confidence, 0.0), 1.0)
    return VisionJudgment(
        verdict="damaged" if data.get("is_damaged") else "ok",
        confidence=confidence,
        reason=str(data.get("reason") or "")[:500],
        raw=data,
    )


class GeminiVerifier:
    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = (api_url or settings.VISION_API_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.VISION_API_KEY
        self._model = model or settings.VISION_MODEL
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def analyze(self, image_url: str, instructions: str) -> VisionJudgment:
        client = self._get_client()
        try:
            image = await client.get(image_url)
            image.raise_for_status()
            payload = self._payload(
                instructions,
                image.headers.get("content-type", "image/jpeg"),
                base64.b64encode(image.content).decode("ascii"),
            )
            resp = await client.post(
                f"{self._api_url}/{self._model}:generateContent",
                params={"key": self._api_key},
                json=payload,
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Vision request failed: %s", exc)
            raise VisionUnavailableError(str(exc)[:200]) from exc

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise VisionUnavailableError("empty model response") from exc
        judgment = parse_judgment(text)
        logger.info(
            "Vision verdict=%s confidence=%.2f for %s",
            judgment.verdict,
            judgment.confidence,
            image_url[:60],
        )
        return judgment

    @staticmethod
    def _payload(instructions: str, mime_type: str, data_b64: str) -> dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {"text": instructions},
                    {"inlineData": {"mimeType": mime_type, "data": data_b64}},
                ],
            }],
            "generationConfig": {"temperature": 0.4, "maxOutputTokens": 1024},
        }


def build_default_verifier() -> GeminiVerifier | None:
    if settings.VISION_API_KEY:
        return GeminiVerifier()
    logger.warning("VISION_API_KEY not set; dispute photos are not scored")
    return None
