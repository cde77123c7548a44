"""Reconcile noisy OCR text against the set of enrolled identifiers.

OCR on printed cards regularly confuses letters and symbols with digits and
picks up neighbouring text. Matching runs in three passes of decreasing
precision:

1. Exact containment of a known identifier anywhere in the cleaned digits
2. Every 7-digit window, left to right
3. The first 7 digits

Exact containment runs first so that noise at either edge of the digit run
does not hide an otherwise intact identifier. It can also match a short known
identifier that happens to sit inside a longer digit run; that risk is accepted.
"""
import re
from typing import Iterable, Optional

from idverify.core.logging import get_logger
from idverify.domain.entities.identity import IDENTIFIER_LENGTH

logger = get_logger(__name__)

# Visually confusable characters and the digit OCR most likely meant
_SUBSTITUTIONS = {
    "0": "Oo",
    "1": "IlL|!",
    "5": "Ss$",
    "2": "Zz",
    "8": "Bb",
    "9": "Gg&",
    "4": "Aa@",
    "7": "Tt+",
}
_TRANSLATION = str.maketrans(
    {char: digit for digit, chars in _SUBSTITUTIONS.items() for char in chars}
)
_NON_DIGITS = re.compile(r"[^0-9]")


def clean_ocr_text(text: Optional[str]) -> str:
    """Map confusable characters to digits and drop everything else.

    Args:
        text: Raw recognized text

    Returns:
        A string containing only ASCII digits (possibly empty)
    """
    if not text:
        return ""
    return _NON_DIGITS.sub("", text.translate(_TRANSLATION))


def find_identifier(text: Optional[str], known_ids: Iterable[str]) -> Optional[str]:
    """Find an enrolled identifier in raw OCR text.

    Args:
        text: Raw recognized text
        known_ids: Canonical identifiers currently enrolled, in store order

    Returns:
        The matched identifier, or None when no pass finds a known identifier
    """
    digits = clean_ocr_text(text)
    if not digits:
        return None

    # Empty identifiers would match every string
    ordered = [known for known in known_ids if known]
    known_set = set(ordered)

    for known in ordered:
        if known in digits:
            logger.debug("Identifier found by containment", identifier=known)
            return known

    if len(digits) >= IDENTIFIER_LENGTH:
        for start in range(len(digits) - IDENTIFIER_LENGTH + 1):
            candidate = digits[start:start + IDENTIFIER_LENGTH]
            if candidate in known_set:
                logger.debug("Identifier found in window", identifier=candidate, offset=start)
                return candidate

        first = digits[:IDENTIFIER_LENGTH]
        if first in known_set:
            logger.debug("Identifier matched leading digits", identifier=first)
            return first

    logger.debug("No identifier in recognized text", digits=digits)
    return None

