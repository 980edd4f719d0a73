"""
Parsing layer for rendered Maps pages.

Each page variant has its own layout parser strategy. A markup change on
the Maps side should only require a new strategy, not a pipeline rewrite.
"""
import re
import logging
from typing import Callable, Dict, List, Optional, Type

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .models import PlaceRecord
from .normalize import (
    absolute_maps_url,
    clean_text,
    name_from_url,
    parse_coordinates,
    parse_count,
    parse_rating,
    strip_label_prefix,
)

logger = logging.getLogger(__name__)


SEPARATOR = "·"

FEED_SELECTOR = 'div[role="feed"]'
CARD_SELECTOR = 'div[role="feed"] > div > div'
CARD_LINK_SELECTOR = 'div[role="feed"] > div > div > a'

_BLOCK_TAGS = {
    'address', 'article', 'br', 'div', 'footer', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'header', 'li', 'ol', 'p', 'section', 'table', 'tr', 'ul',
}

# Noise classifiers for list-card lines
_PRICE = re.compile(r'Rp|\$|€|£')
_STATUS = re.compile(r'\b(?:Open|Clos)')
_PAREN_COUNT = re.compile(r'\(\s*\d[\d,\.\s]*\)')
_SERVICE_OPTION = re.compile(
    r'Dine-in|Takeaway|Take-out|Takeout|Delivery|Drive-through|Curbside pickup|In-store',
    re.IGNORECASE,
)
_CATEGORY_FALLBACK_NOISE = re.compile(r'Open|Clos|Rp|\$|\(|\)|Dine-in')
_ADDRESS_KEYWORDS = re.compile(
    r'\b(?:jl\.|jalan|no\.|kec\.|kab\.|desa|kel\.|kota|st\.|street|road|rd\.|ave\.|avenue|blvd)',
    re.IGNORECASE,
)

_REVIEWS_IN_LABEL = re.compile(r'([\d,\.]+)\s+reviews?', re.IGNORECASE)
_PAREN_NUMBER = re.compile(r'\(([\d,\. ]+)\)')
_RATING_WITH_COUNT = re.compile(r'(\d(?:[.,]\d)?)\s*\(([\d,\. ]+)\)')
_PHONE_TEXT = re.compile(r'^(?:\+|\(?\d{3}\)?[\s\-.]?\d{3}[\s\-.]?\d{3,4}$)')


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", 'lxml')


def safe_text(element: Optional[Tag]) -> Optional[str]:
    """Cleaned visible text of an element, or None"""
    if element is None:
        return None
    return clean_text(element.get_text(" ", strip=True))


def safe_attr(element: Optional[Tag], attr: str) -> Optional[str]:
    if element is None:
        return None
    value = element.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip() if value else None


def text_lines(element: Tag) -> List[str]:
    """
    Approximate a rendered element's innerText as a list of lines.

    Inline children are joined, block-level children break lines.
    """
    lines: List[str] = []
    current: List[str] = []

    def flush():
        line = clean_text(''.join(current))
        current.clear()
        if line:
            lines.append(line)

    def walk(node: Tag):
        for child in node.children:
            if isinstance(child, Comment):
                continue
            if isinstance(child, NavigableString):
                current.append(str(child))
            elif isinstance(child, Tag):
                if child.name in ('script', 'style', 'noscript'):
                    continue
                block = child.name in _BLOCK_TAGS
                if block:
                    flush()
                walk(child)
                if block:
                    flush()

    walk(element)
    flush()
    return lines


def is_noise_line(line: str) -> bool:
    """Price marker, open/closed status, review count or service-option tags"""
    return bool(
        _PRICE.search(line)
        or _STATUS.search(line)
        or _PAREN_COUNT.search(line)
        or _SERVICE_OPTION.search(line)
    )


def looks_like_address(text: Optional[str]) -> bool:
    if not text or len(text.strip()) < 6:
        return False
    if is_noise_line(text):
        return False
    has_digit = any(c.isdigit() for c in text)
    if has_digit and ',' in text:
        return True
    return bool(_ADDRESS_KEYWORDS.search(text)) and has_digit


def split_category_address(lines: List[str]):
    """
    Find a 'category · address' line among the card lines after the name.

    Returns (category, address); either may be None.
    """
    for line in lines[1:]:
        if SEPARATOR not in line or is_noise_line(line):
            continue
        parts = [p for p in (clean_text(part) for part in line.split(SEPARATOR)) if p]
        if len(parts) >= 2:
            return parts[0], ", ".join(parts[1:])
    return None, None


class LayoutParser:
    """Base class for a page-variant specific parser"""

    variant: str = ""

    def __init__(self, strict: bool = True, request_id: str = "-"):
        self.strict = strict
        self.request_id = request_id

    def parse(self, html: str, url: Optional[str] = None) -> List[PlaceRecord]:
        raise NotImplementedError


_PARSERS: Dict[str, Type[LayoutParser]] = {}


def register_parser(cls: Type[LayoutParser]) -> Type[LayoutParser]:
    _PARSERS[cls.variant] = cls
    return cls


def get_parser(variant: str, strict: bool = True, request_id: str = "-") -> LayoutParser:
    try:
        return _PARSERS[variant](strict=strict, request_id=request_id)
    except KeyError:
        raise ValueError(f"No layout parser registered for variant {variant!r}")


@register_parser
class ListCardParser(LayoutParser):
    """Extracts summary records straight from the results feed (fast mode)"""

    variant = "list"

    def _link_patterns(self):
        return ('/maps/place/',) if self.strict else ('/maps/place/', '/maps/search/')

    def _card_link(self, card: Tag) -> Optional[Tag]:
        for link in card.find_all('a', href=True):
            if any(p in link['href'] for p in self._link_patterns()):
                return link
        return None

    def parse(self, html: str, url: Optional[str] = None, limit: Optional[int] = None) -> List[PlaceRecord]:
        soup = make_soup(html)
        records: List[PlaceRecord] = []

        for card in soup.select(CARD_SELECTOR):
            if limit is not None and len(records) >= limit:
                break
            try:
                record = self.parse_card(card)
            except Exception as e:
                logger.debug(f"[{self.request_id}] Skipping unparseable card: {e}")
                continue
            if record is not None and record.is_emittable:
                records.append(record)

        return records

    def parse_card(self, card: Tag) -> Optional[PlaceRecord]:
        link = self._card_link(card)
        if link is None:
            return None
        maps_url = absolute_maps_url(link['href'])
        if not maps_url:
            return None

        lines = text_lines(card)
        if not lines:
            return None
        aria_label = clean_text(safe_attr(link, 'aria-label'))

        name = safe_text(card.select_one('.fontHeadlineSmall, [role="heading"]')) or aria_label or lines[0]

        rating = None
        review_count = None
        star_el = card.select_one('span[role="img"][aria-label*="star"]')
        star_label = safe_attr(star_el, 'aria-label')
        if star_label:
            rating = parse_rating(star_label, require_stars=True)
            reviews = _REVIEWS_IN_LABEL.search(star_label)
            if reviews:
                review_count = parse_count(reviews.group(1))
        elif aria_label:
            rating = parse_rating(aria_label, require_stars=True)

        category, address = split_category_address(lines)

        if not address:
            address = next(
                (l for l in lines[1:] if ',' in l and any(c.isdigit() for c in l) and not is_noise_line(l)),
                None,
            ) or next((l for l in lines[1:] if looks_like_address(l)), None)

        if not category and len(lines) > 1:
            candidate = lines[1]
            if not _CATEGORY_FALLBACK_NOISE.search(candidate) and candidate != address:
                category = candidate

        latitude, longitude = parse_coordinates(maps_url)

        return PlaceRecord(
            name=clean_text(name),
            address=address,
            latitude=latitude,
            longitude=longitude,
            rating=rating,
            review_count=review_count,
            category=category,
            maps_url=maps_url,
        )

    def place_urls(self, html: str, limit: Optional[int] = None) -> List[str]:
        """Detail-page URLs of the feed cards, in feed order, deduplicated"""
        soup = make_soup(html)
        urls: List[str] = []
        for link in soup.select(CARD_LINK_SELECTOR):
            href = link.get('href') or ''
            if not any(p in href for p in self._link_patterns()):
                continue
            absolute = absolute_maps_url(href)
            if absolute and absolute not in urls:
                urls.append(absolute)
            if limit is not None and len(urls) >= limit:
                break
        return urls


@register_parser
class DetailPanelParser(LayoutParser):
    """Extracts a full record from a place's detail panel"""

    variant = "detail"

    def _soft(self, field_name: str, extractor: Callable, *args):
        """Run one field extractor; failures leave the field empty"""
        try:
            return extractor(*args)
        except Exception as e:
            logger.debug(f"[{self.request_id}] Field extraction failed for {field_name}: {e}")
            return None

    def parse(self, html: str, url: Optional[str] = None) -> List[PlaceRecord]:
        record = self.parse_place(html, url or "")
        return [record] if record.is_emittable else []

    def parse_place(self, html: str, url: str) -> PlaceRecord:
        soup = make_soup(html)

        name = self._soft('name', self.extract_name, soup, url)
        rating_and_reviews = self._soft('rating', self.extract_rating_and_reviews, soup) or (None, None)
        category = self._soft('category', self.extract_category, soup)
        address = self._soft('address', self.extract_address, soup)
        phone = self._soft('phone', self.extract_phone, soup)
        website = self._soft('website', self.extract_website, soup)
        latitude, longitude = self._soft('coordinates', parse_coordinates, url) or (None, None)

        return PlaceRecord(
            name=name,
            address=address,
            latitude=latitude,
            longitude=longitude,
            rating=rating_and_reviews[0],
            review_count=rating_and_reviews[1],
            category=category,
            phone=phone,
            website=website,
            maps_url=url,
        )

    def extract_name(self, soup: BeautifulSoup, url: str) -> Optional[str]:
        return name_from_url(url) or safe_text(soup.select_one('h1'))

    def extract_rating_and_reviews(self, soup: BeautifulSoup):
        rating = None
        review_count = None

        star_label = safe_attr(soup.select_one('[role="img"][aria-label*="star"]'), 'aria-label')
        if star_label:
            rating = parse_rating(star_label)
            reviews = _REVIEWS_IN_LABEL.search(star_label)
            if reviews:
                review_count = parse_count(reviews.group(1))

        if not review_count:
            button = soup.select_one('button[aria-label*="review"]')
            if button is not None:
                label_match = _REVIEWS_IN_LABEL.search(safe_attr(button, 'aria-label') or '')
                if label_match:
                    review_count = parse_count(label_match.group(1))
                else:
                    review_count = parse_count(safe_text(button))

        if not review_count:
            rating_block = soup.select_one('div[jsaction*="pane.rating"]')
            if rating_block is not None:
                match = _PAREN_NUMBER.search(rating_block.get_text(" "))
                if match:
                    review_count = parse_count(match.group(1))

        if not review_count:
            header = soup.select_one('.TIHn2, .HeaderHeader')
            if header is not None:
                match = _PAREN_NUMBER.search(header.get_text(" "))
                if match:
                    review_count = parse_count(match.group(1))

        if not review_count:
            body = soup.body or soup
            # Last resort: "4.9 (1,152)" anywhere on the page
            for match in _RATING_WITH_COUNT.finditer(body.get_text(" ")):
                count = parse_count(match.group(2))
                if count and count > 0:
                    review_count = count
                    if rating is None:
                        rating = parse_rating(match.group(1))
                    break

        return rating, review_count or None

    def extract_category(self, soup: BeautifulSoup) -> Optional[str]:
        return safe_text(soup.select_one('button[jsaction*="category"]'))

    def _labelled_value(self, element: Optional[Tag], label: str) -> Optional[str]:
        if element is None:
            return None
        raw = safe_attr(element, 'aria-label') or safe_text(element)
        return strip_label_prefix(clean_text(raw), label)

    def extract_address(self, soup: BeautifulSoup) -> Optional[str]:
        return self._labelled_value(soup.select_one('button[data-item-id="address"]'), 'Address')

    def extract_phone(self, soup: BeautifulSoup) -> Optional[str]:
        phone_el = soup.select_one('button[data-item-id*="phone"]')
        if phone_el is not None:
            return self._labelled_value(phone_el, 'Phone')

        for button in soup.select('button[data-item-id]'):
            if button.get('data-item-id') == 'address':
                continue
            text = safe_text(button)
            if text and _PHONE_TEXT.match(text):
                return text
        return None

    def extract_website(self, soup: BeautifulSoup) -> Optional[str]:
        authority = safe_attr(soup.select_one('a[data-item-id="authority"]'), 'href')
        if authority:
            return authority

        for link in soup.find_all('a', href=True):
            text = (link.get_text() or '').strip().lower()
            label = (safe_attr(link, 'aria-label') or '').lower()
            if text == 'website' or label == 'website':
                return link['href']
        return None
