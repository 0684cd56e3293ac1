"""Domain models for js_verify."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class VisionJudgment:
    verdict: str                 # "damaged" | "ok" | "unknown"
    confidence: float            # 0.0 - 1.0
    reason: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_damaged(self) -> bool:
        return self.verdict == "damaged"
