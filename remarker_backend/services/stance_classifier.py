"""
Stance Classifier

Classifies a reply against the claim it answers as support, challenge or
question. Classification fails open: an empty, off-vocabulary or failed
oracle answer yields ``question`` so a bad call never blocks graph growth.
"""

import logging
import re
from typing import Optional

from remarker_backend.models import CLASSIFIER_STANCES, REPLY_STANCES, Stance
from remarker_backend.services.oracle_clients import TextOracle
from remarker_backend.services.prompt_manager import PromptManager, get_prompt_manager

logger = logging.getLogger("remarker_backend")

DEFAULT_STANCE = Stance.QUESTION
DEFAULT_HINT_STANCE = Stance.COMMENT

_WORD = re.compile(r"[a-z]+")


def _first_word(text: Optional[str]) -> str:
    match = _WORD.search(str(text or "").strip().lower())
    return match.group(0) if match else ""


def normalize_stance_label(text: Optional[str]) -> Stance:
    """Map a raw oracle answer onto the classifier vocabulary, defaulting to question."""
    word = _first_word(text)
    for stance in CLASSIFIER_STANCES:
        if word == stance.value:
            return stance
    return DEFAULT_STANCE


def resolve_stance_hint(hint: Optional[str]) -> Stance:
    """Validate a user-supplied stance against the reply vocabulary, defaulting to comment."""
    word = _first_word(hint)
    for stance in REPLY_STANCES:
        if word == stance.value:
            return stance
    return DEFAULT_HINT_STANCE


class StanceClassifier:
    def __init__(self, oracle: TextOracle, prompt_manager: Optional[PromptManager] = None):
        self.oracle = oracle
        self.prompt_manager = prompt_manager or get_prompt_manager()

    async def classify(self, reply_text: str, parent_text: str) -> Stance:
        prompt = self.prompt_manager.render_prompt(
            "classify_stance",
            {"claim": parent_text, "response": reply_text},
        )
        try:
            answer = await self.oracle.generate(prompt)
        except Exception as exc:
            logger.warning("[CLASSIFIER] Classification failed, defaulting to %s: %s", DEFAULT_STANCE.value, exc)
            return DEFAULT_STANCE

        stance = normalize_stance_label(answer)
        if stance is DEFAULT_STANCE and _first_word(answer) != DEFAULT_STANCE.value:
            logger.info("[CLASSIFIER] Off-vocabulary answer %r, defaulting to %s", answer, DEFAULT_STANCE.value)
        return stance
