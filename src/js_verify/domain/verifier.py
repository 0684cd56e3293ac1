"""VisionVerifier — score a photo against a written instruction.

A judgment is evidence attached to an order; it never moves an order by
itself. Implementations raise VisionUnavailableError when they cannot answer.
"""

from typing import Protocol

from src.js_verify.domain.models import VisionJudgment

DISPUTE_INSTRUCTIONS = (
    "Analyze this photo of delivered goods for damage or spoilage. "
    "Return ONLY a JSON object: "
    '{"is_damaged": boolean, "confidence": number 0-100, "reason": string}. '
    "Look for rot, mold, broken packaging, abnormal colour or texture and "
    "visible contamination."
)


class VisionVerifier(Protocol):
    async def analyze(self, image_url: str, instructions: str) -> VisionJudgment: ...
