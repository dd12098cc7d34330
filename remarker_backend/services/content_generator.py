"""
Generative Content Adapter

Turns a topic into either a short list of candidate claims or a structured
stanza (claim, supports, counter, question). Stanza output follows a fixed
labeled-line format; labels the model leaves out degrade to placeholders
instead of failing the parse.
"""

import logging
import re
from typing import Dict, List, Optional

from remarker_backend.errors import OracleFailure
from remarker_backend.models import Stanza
from remarker_backend.services.oracle_clients import TextOracle
from remarker_backend.services.prompt_manager import PromptManager, get_prompt_manager

logger = logging.getLogger("remarker_backend")

CLAIM_PLACEHOLDER = "(No claim provided)"
SUPPORT_PLACEHOLDER = "(No supporting point provided)"
COUNTER_PLACEHOLDER = "(No counterpoint provided)"
QUESTION_PLACEHOLDER = "(No question provided)"

DEFAULT_CLAIM_COUNT = 3

_BARE_NUMBER = re.compile(r"^\s*\d+[.)]?\s*$")
_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]?|[-*•])\s*")
_STANZA_LABEL = re.compile(
    r"^[\s*_>#-]*(claim|support|counter(?:point)?|question)(?:\s*(\d+))?[\s*_]*:[\s*_]*(.*?)[\s*_]*$",
    re.IGNORECASE,
)


def parse_claim_lines(text: Optional[str], limit: int = DEFAULT_CLAIM_COUNT) -> List[str]:
    """Split a model answer into claims, dropping blank and bare-number lines and list markers."""
    claims: List[str] = []
    for line in str(text or "").strip().splitlines():
        if not line.strip() or _BARE_NUMBER.match(line):
            continue
        claim = _LIST_MARKER.sub("", line, count=1).strip().strip("*").strip()
        if claim:
            claims.append(claim)
        if len(claims) >= limit:
            break
    return claims


def parse_stanza(text: Optional[str]) -> Stanza:
    """
    Parse labeled lines into a Stanza.

    Recognised labels: ``CLAIM:``, ``SUPPORT n:``, ``COUNTER:``, ``QUESTION:``
    (case-insensitive, markdown emphasis tolerated). Unlabeled lines continue
    the previous labeled value. The first occurrence of a single-valued label wins.
    """
    singles: Dict[str, List[str]] = {}
    supports: List[tuple] = []  # (number, arrival order, parts)
    current: Optional[List[str]] = None

    for line in str(text or "").splitlines():
        if not line.strip():
            continue
        match = _STANZA_LABEL.match(line)
        if not match:
            if current is not None:
                current.append(line.strip())
            continue

        label = match.group(1).lower()
        if label.startswith("counter"):
            label = "counter"
        parts = [match.group(3).strip()]

        if label == "support":
            number = match.group(2)
            order = len(supports)
            supports.append((int(number) if number else order + 1, order, parts))
            current = parts
        elif label not in singles:
            singles[label] = parts
            current = parts
        else:
            # Repeated label: swallow its continuation lines too.
            current = []

    def _joined(parts: Optional[List[str]]) -> str:
        return " ".join(part for part in (parts or []) if part).strip()

    support_texts = [
        _joined(parts) for _, _, parts in sorted(supports, key=lambda item: (item[0], item[1]))
    ]
    support_texts = [support for support in support_texts if support]

    return Stanza(
        claim=_joined(singles.get("claim")) or CLAIM_PLACEHOLDER,
        supports=support_texts or [SUPPORT_PLACEHOLDER],
        counter=_joined(singles.get("counter")) or COUNTER_PLACEHOLDER,
        question=_joined(singles.get("question")) or QUESTION_PLACEHOLDER,
    )


class ContentGenerator:
    """Draft claims and stanzas for a topic through the oracle."""

    def __init__(self, oracle: TextOracle, prompt_manager: Optional[PromptManager] = None):
        self.oracle = oracle
        self.prompt_manager = prompt_manager or get_prompt_manager()

    async def draft_claims(self, topic: str, count: int = DEFAULT_CLAIM_COUNT) -> List[str]:
        prompt = self.prompt_manager.render_prompt("draft_claims", {"topic": topic, "count": count})
        text = await self.oracle.generate(prompt)
        claims = parse_claim_lines(text, limit=count)
        logger.info("[GENERATOR] Drafted %d claim(s) for topic=%r", len(claims), topic)
        return claims

    async def draft_stanza(self, topic: str) -> Stanza:
        prompt = self.prompt_manager.render_prompt("draft_stanza", {"topic": topic})
        text = await self.oracle.generate(prompt)
        if not text.strip():
            raise OracleFailure("Oracle returned an empty stanza")
        return parse_stanza(text)
