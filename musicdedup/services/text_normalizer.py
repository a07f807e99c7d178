"""
Text normalization for metadata comparison.

Steps, applied in fixed order (each toggled independently):
1. Trim and collapse whitespace
2. Case-fold
3. Replace punctuation with a single space
4. Strip leading artist articles (artist fields)
5. Strip trailing featuring credits (title and artist fields)
6. Strip trailing edition markers (album fields)
"""

import re
from enum import Enum
from functools import lru_cache
from typing import Optional, Pattern, Tuple

from musicdedup.models.config import NormalizationOptions


class FieldKind(str, Enum):
    TITLE = "title"
    ARTIST = "artist"
    ALBUM = "album"


_WHITESPACE_PATTERN = re.compile(r"\s+")
# Any run of non-word characters, plus underscores
_PUNCTUATION_PATTERN = re.compile(r"[\W_]+")
_ARTIST_PREFIX_PATTERN = re.compile(r"^(?:the|a|an)\s+(?=\S)", re.IGNORECASE)
_FEATURING_PATTERN = re.compile(
    r"\s+[\(\[]?(?:feat|ft|featuring)\b\.?(?:\s+.*|[\)\]])?$",
    re.IGNORECASE,
)


def normalize(
    raw: Optional[str],
    options: NormalizationOptions,
    field: FieldKind = FieldKind.TITLE,
) -> str:
    """
    Normalize a metadata value for comparison.

    Args:
        raw: Original value (None is treated as empty)
        options: Normalization toggles
        field: Which metadata field the value came from

    Returns:
        Normalized value; "" for None or blank input
    """
    if not raw:
        return ""

    value = _basic(raw, options.ignore_case, options.ignore_punctuation)

    if field == FieldKind.ARTIST and options.ignore_artist_prefixes:
        value = _ARTIST_PREFIX_PATTERN.sub("", value, count=1)

    if field in (FieldKind.TITLE, FieldKind.ARTIST) and options.ignore_featuring:
        value = _FEATURING_PATTERN.sub("", value, count=1)

    if field == FieldKind.ALBUM and options.ignore_album_editions:
        value = _strip_editions(value, options)

    return _collapse(value)


def _collapse(value: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", value).strip()


def _basic(value: str, ignore_case: bool, ignore_punctuation: bool) -> str:
    value = _collapse(value)
    if ignore_case:
        value = value.casefold()
    if ignore_punctuation:
        value = _collapse(_PUNCTUATION_PATTERN.sub(" ", value))
    return value


def _strip_editions(value: str, options: NormalizationOptions) -> str:
    pattern = _edition_pattern(
        tuple(options.edition_suffixes),
        options.ignore_case,
        options.ignore_punctuation,
    )
    # "(Remastered) (Deluxe Edition)" carries several markers
    while True:
        stripped = pattern.sub("", value, count=1)
        if stripped == value:
            return value
        value = stripped.rstrip()


@lru_cache(maxsize=32)
def _edition_pattern(
    suffixes: Tuple[str, ...], ignore_case: bool, ignore_punctuation: bool
) -> Pattern[str]:
    # Suffixes go through the same steps as the value so they still match
    # after punctuation has been removed
    normalized = {_basic(s, ignore_case, ignore_punctuation) for s in suffixes}
    alternatives = "|".join(
        re.escape(s).replace(r"\ ", r"\s+")
        for s in sorted(filter(None, normalized), key=len, reverse=True)
    )
    if not alternatives:
        return re.compile(r"(?!)")
    return re.compile(
        r"(?<=\S)(?:\s*-\s*|\s*[\(\[]\s*|\s+)(?:\d{4}\s+)?(?:"
        + alternatives
        + r")(?:\s+\d{4})?\s*[\)\]]?\s*$",
        re.IGNORECASE,
    )
