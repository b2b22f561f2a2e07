"""
Guardrails — validation around the coach Q&A.

Layers:
  1. Question validation (empty, length)
  2. Prompt-injection logging (never blocks)
  3. Answer validation (length)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────────────

MAX_QUESTION_LENGTH = 500        # Max coach question length
MAX_ANSWER_LENGTH = 2000         # Max coach answer length (it is also spoken)

_INJECTION_PATTERNS = [
    r"ignore\s+(all\s+)?previous\s+instructions",
    r"ignore\s+(all\s+)?above",
    r"disregard\s+(all\s+)?previous",
    r"you\s+are\s+now\s+(?:a|an)\s+",
    r"system\s*:\s*",
    r"<\s*system\s*>",
]


@dataclass
class GuardrailResult:
    """Result of a guardrail check."""
    allowed: bool
    reason: Optional[str] = None
    modified: Optional[str] = None


# ── Input Guardrails ──────────────────────────────────────────────────

def check_question(question: str, device_id: str = "") -> GuardrailResult:
    """
    Validate a coach question before it costs a free question.
    A blank question comes back with allowed=False and no reason: ignore it.
    """
    text = (question or "").strip()
    if not text:
        return GuardrailResult(allowed=False)

    if len(text) > MAX_QUESTION_LENGTH:
        return GuardrailResult(
            allowed=False,
            reason=f"Question too long ({len(text)} chars). Maximum is {MAX_QUESTION_LENGTH}.",
        )

    lowered = text.lower()
    for pattern in _INJECTION_PATTERNS:
        if re.search(pattern, lowered):
            # Logged only. The stylist prompt keeps the model on topic.
            logger.warning("Potential injection from device=%s: %s", device_id, text[:100])
            break

    return GuardrailResult(allowed=True, modified=text)


# ── Output Guardrails ─────────────────────────────────────────────────

def check_answer(answer: str) -> GuardrailResult:
    text = (answer or "").strip()
    if len(text) > MAX_ANSWER_LENGTH:
        return GuardrailResult(allowed=True, modified=text[:MAX_ANSWER_LENGTH].rstrip() + "…")
    return GuardrailResult(allowed=True, modified=text)
