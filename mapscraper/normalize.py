"""
Normalization helpers shared by the layout parsers.
Text cleanup, numeric parsing and URL-derived fields.
"""
import re
import logging
from typing import Optional, Tuple
from urllib.parse import unquote_plus

logger = logging.getLogger(__name__)


# Emoji, pictographs, dingbats, private-use icon glyphs, variation selectors
_SYMBOL_RANGES = re.compile(
    "["
    "\U0001F300-\U0001F9FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\uE000-\uF8FF"
    "\uFE00-\uFEFF"
    "\u200B-\u200D"
    "]"
)

_WHITESPACE = re.compile(r'\s+')

_AT_COORDS = re.compile(r'@(-?\d+\.\d+),(-?\d+\.\d+)')
_BANG_LAT = re.compile(r'!3d(-?\d+\.\d+)')
_BANG_LNG = re.compile(r'!4d(-?\d+\.\d+)')

_PLACE_SLUG = re.compile(r'/maps/place/([^/@?]+)')

_NUMBER = re.compile(r'(\d+(?:[.,]\d+)?)')
_STARS = re.compile(r'(\d+(?:[.,]\d+)?)\s*stars?', re.IGNORECASE)


def clean_text(text: Optional[str]) -> Optional[str]:
    """Strip icon/emoji code points and collapse whitespace; empty becomes None"""
    if not text:
        return None
    cleaned = _SYMBOL_RANGES.sub('', text)
    cleaned = _WHITESPACE.sub(' ', cleaned).strip()
    return cleaned or None


def parse_coordinates(url: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Extract (latitude, longitude) from a Maps URL.

    The @lat,lng viewport segment wins over the !3d/!4d data tokens.
    Text on the page is never used for coordinates.
    """
    if not url:
        return None, None

    match = _AT_COORDS.search(url)
    if match:
        return float(match.group(1)), float(match.group(2))

    lat_match = _BANG_LAT.search(url)
    lng_match = _BANG_LNG.search(url)
    if lat_match and lng_match:
        return float(lat_match.group(1)), float(lng_match.group(1))

    return None, None


def name_from_url(url: Optional[str]) -> Optional[str]:
    """Decode the place slug: /maps/place/Foo+Bar/... -> 'Foo Bar'"""
    if not url:
        return None
    match = _PLACE_SLUG.search(url)
    if not match:
        return None
    return clean_text(unquote_plus(match.group(1)))


def _to_rating(raw: str) -> Optional[float]:
    try:
        value = float(raw.replace(',', '.'))
    except ValueError:
        return None
    if 0 <= value <= 5:
        return value
    return None


def parse_rating(text: Optional[str], require_stars: bool = False) -> Optional[float]:
    """
    Parse a rating out of a label such as '4.5 stars' or '4,5 stars 120 reviews'.

    With require_stars the number must be followed by 'star(s)'.
    """
    if not text:
        return None
    match = _STARS.search(text)
    if match:
        return _to_rating(match.group(1))
    if require_stars:
        return None
    match = _NUMBER.search(text)
    if match:
        return _to_rating(match.group(1))
    return None


def parse_count(text: Optional[str]) -> Optional[int]:
    """Parse an integer count with thousands separators: '1,152' / '1.152' / '1 152'"""
    if not text:
        return None
    match = re.search(r'\d[\d,\.\s]*', text)
    if not match:
        return None
    digits = re.sub(r'[,\.\s]', '', match.group(0))
    if not digits:
        return None
    return int(digits)


def strip_label_prefix(text: Optional[str], label: str) -> Optional[str]:
    """Remove a literal 'Label: ' prefix, as found in accessible labels"""
    if not text:
        return None
    prefix = f"{label}: "
    if text.startswith(prefix):
        text = text[len(prefix):]
    return clean_text(text)


def absolute_maps_url(href: Optional[str], origin: str = "https://www.google.com") -> Optional[str]:
    if not href:
        return None
    if href.startswith('http'):
        return href
    if href.startswith('/'):
        return f"{origin}{href}"
    return None
