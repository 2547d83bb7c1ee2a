"""
BeautifulSoup-based extraction of golf course facts from HTML documents.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup, Tag
from bs4.element import NavigableString, PreformattedString
from soupsieve import SelectorSyntaxError

from fairway.scraping.errors import ExtractionError
from fairway.scraping.logging_utils import log_event
from fairway.scraping.types import (
    ContactInfo,
    CourseImages,
    ExtractedCourseFacts,
    ScrapeTarget,
)

logger = logging.getLogger(__name__)

YEAR_IN_CONTEXT_REGEX = re.compile(
    r"\b(?i:opened|established|built|founded|since|est\.?|debuted|dating\s+back\s+to)"
    r"\D{0,25}?\b((?:19|20)\d{2})\b"
)
YEAR_REGEX = re.compile(r"\b((?:19|20)\d{2})\b")
YARDAGE_NEAR_UNIT_REGEX = re.compile(
    r"\b(\d{1,2},\d{3}|\d{4,5})\s*-?\s*(?i:total\s+)?(?i:yards?|yds?)\b"
)
YARDAGE_LABEL_REGEX = re.compile(r"(?i:yardage)\D{0,15}\b(\d{1,2},\d{3}|\d{4,5})\b")
YARDAGE_BARE_REGEX = re.compile(r"\b(\d{1,2},\d{3}|\d{4,5})\b")
PAR_REGEX = re.compile(r"\bpar\b[\s\-:]*(\d{2})\b", flags=re.IGNORECASE)
HOLES_REGEX = re.compile(r"\b(\d{1,2})[\s\-]*holes?\b", flags=re.IGNORECASE)
PRICE_REGEX = re.compile(
    r"\$\s?\d[\d,]*(?:\.\d{2})?(?:\s*(?:-|–|to)\s*\$?\s?\d[\d,]*(?:\.\d{2})?)?"
)
PHONE_REGEX = re.compile(
    r"(?:\+?\d{1,3}[\s.\-]?)?\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}\b"
)
EMAIL_REGEX = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
ARCHITECT_REGEX = re.compile(
    r"(?i:designed\s+by|architects?:|designer:|course\s+architect)\s*"
    r"(?:(?i:renowned|legendary|famed|famous|noted|acclaimed|celebrated|golf|course)\s+)*"
    r"(?:(?i:architects?)\s+)?"
    r"(?P<name>[A-Z][A-Za-z'\-]+(?:\s+(?:[A-Z]\.\s*)*[A-Z][A-Za-z'\-]+){0,3})"
)
ARCHITECT_PREFIX_REGEX = re.compile(r"^(?:designed\s+by|architect:?|designer:?)\s*", re.IGNORECASE)
PRICING_PREFIX_REGEX = re.compile(r"^(?:greens?\s*fees?:?|rates?:?|pricing:?)\s*", re.IGNORECASE)
TITLE_SEPARATOR_REGEX = re.compile(r"\s+(?:\||-|–|—|::)\s+")
VENUE_WORD_REGEX = re.compile(
    r"\b(?:golf|club|links|course|country\s+club|resort|national|cc)\b",
    flags=re.IGNORECASE,
)
WHITESPACE_REGEX = re.compile(r"\s+")

GENERIC_ARCHITECT_WORDS = {"architect", "architects", "designer", "the", "a"}
SKIPPED_TEXT_PARENTS = {"script", "style", "noscript", "template", "title"}
BOOKING_HREF_SKIP_PREFIXES = ("mailto:", "tel:", "javascript:", "#")

MAX_DESCRIPTION_LENGTH = 500
MAX_SHORT_TEXT_LENGTH = 120
MAX_ADDRESS_LENGTH = 200
MAX_KEYWORD_SCAN = 2000
MAX_NODES_PER_SELECTOR = 25
IMAGE_LIMITS = {"hero": 3, "gallery": 10, "course_map": 2}


@dataclass(frozen=True)
class Candidate:
    """
    One piece of text offered to a field parser.

    `targeted` marks text that came from a field-specific selector rather than
    a page-wide keyword scan.
    """

    text: str
    targeted: bool


@dataclass(frozen=True)
class PageExtraction:
    facts: ExtractedCourseFacts
    contact: ContactInfo
    images: CourseImages
    warnings: list[str] = field(default_factory=list)


class CourseFactParser:
    """
    Deterministic cascading-selector extraction for course pages.

    Every field walks an ordered list of candidates (target hints, then
    built-in selectors, then keyword text search) and keeps the first one
    that parses.
    """

    DEFAULT_SELECTORS: dict[str, list[str]] = {
        "course_name": [
            "h1",
            ".course-name",
            ".page-title",
            "[data-testid='course-name']",
            "meta[property='og:site_name']",
            "title",
        ],
        "description": [
            ".course-description",
            ".about-course",
            ".course-overview",
            "meta[name='description']",
            "meta[property='og:description']",
            ".description",
        ],
        "architect": [".architect", ".designer", "[itemprop='architect']"],
        "opening_year": [".opening-year", ".established", ".year-opened", "[itemprop='foundingDate']"],
        "yardage": [".yardage", ".total-yardage", ".course-yardage"],
        "par": [".par", ".course-par"],
        "holes": [".holes", ".course-holes", ".number-of-holes"],
        "pricing": [".pricing", ".green-fees", ".greens-fees", ".rates", ".rate-card"],
        "phone": [".phone", ".contact-phone", "[itemprop='telephone']"],
        "email": [".email", ".contact-email", "[itemprop='email']"],
        "address": [
            ".address",
            ".contact-address",
            ".venue-address",
            "address",
            "[itemprop='address']",
            ".location",
        ],
        "website": [
            "link[rel~='canonical']",
            "meta[property='og:url']",
            ".website a",
        ],
        "booking_url": [
            "a[href*='booking']",
            "a[href*='book-']",
            "a[href*='tee-time']",
            "a[href*='teetime']",
            "a[href*='reserve']",
            "a[href*='reservation']",
        ],
        "hero": [
            ".hero img",
            ".banner img",
            ".main-image img",
            ".course-image img",
            "img[alt*='golf' i]",
        ],
        "gallery": [
            ".gallery img",
            ".photo-gallery img",
            ".course-photos img",
            ".slideshow img",
            "[class*='gallery'] img",
        ],
        "course_map": [
            "img[alt*='map' i]",
            "img[alt*='layout' i]",
            "img[alt*='scorecard' i]",
            ".course-map img",
            ".layout img",
        ],
    }
    KEYWORDS: dict[str, list[str]] = {
        "description": ["golf"],
        "architect": ["designed by", "architect", "designer"],
        "opening_year": ["opened", "established", "built in", "founded", "since", "est."],
        "yardage": ["yards", "yardage", "yds"],
        "par": ["par"],
        "holes": ["hole"],
        "pricing": ["green fee", "greens fee", "$"],
        "phone": ["phone", "call", "tel"],
        "email": ["@"],
        "booking_url": ["book", "tee time", "reserve"],
    }

    @classmethod
    def parse_document(cls, markup: str | bytes, *, url: str) -> BeautifulSoup:
        """
        Build a tree from possibly malformed markup.

        `html.parser` closes unterminated tags instead of failing; only
        undecodable or empty input is rejected.
        """

        if not markup or not markup.strip():
            raise ExtractionError("Response body is empty", url=url)
        try:
            return BeautifulSoup(markup, "html.parser")
        except (AssertionError, LookupError, TypeError, ValueError) as exc:
            raise ExtractionError(f"Unable to parse HTML: {exc}", url=url) from exc

    @classmethod
    def extract(
        cls,
        *,
        soup: BeautifulSoup,
        target: ScrapeTarget,
        final_url: str,
        extracted_at: datetime,
    ) -> PageExtraction:
        warnings: list[str] = []
        selectors = {
            name: cls._selectors_for(name, target) for name in cls.DEFAULT_SELECTORS
        }

        name = cls._extract_name(soup, target=target, warnings=warnings)
        holes = cls._first_parsed(
            cls._candidates(soup, selectors["holes"], cls.KEYWORDS["holes"], warnings),
            cls._parse_holes,
        )
        contact = cls.extract_contact(
            soup=soup,
            selectors=selectors,
            final_url=final_url,
            warnings=warnings,
        )
        images = cls.extract_images(
            soup=soup,
            selectors=selectors,
            final_url=final_url,
            warnings=warnings,
        )

        facts = ExtractedCourseFacts(
            name=name,
            source=target.url,
            extracted_at=extracted_at,
            description=cls._first_parsed(
                cls._candidates(
                    soup, selectors["description"], cls.KEYWORDS["description"], warnings
                ),
                cls._parse_description,
            ),
            architect=cls._first_parsed(
                cls._candidates(
                    soup, selectors["architect"], cls.KEYWORDS["architect"], warnings
                ),
                cls._parse_architect,
            ),
            opening_year=cls._first_parsed(
                cls._candidates(
                    soup, selectors["opening_year"], cls.KEYWORDS["opening_year"], warnings
                ),
                cls._parse_year,
            ),
            total_yardage=cls._first_parsed(
                cls._candidates(soup, selectors["yardage"], cls.KEYWORDS["yardage"], warnings),
                cls._parse_yardage,
            ),
            par_score=cls._first_parsed(
                cls._candidates(soup, selectors["par"], cls.KEYWORDS["par"], warnings),
                cls._parse_par,
            ),
            number_of_holes=holes if holes is not None else 18,
            greens_fee_price_range=cls._first_parsed(
                cls._candidates(soup, selectors["pricing"], cls.KEYWORDS["pricing"], warnings),
                cls._parse_pricing,
            ),
            contact=contact,
            images=images,
        )
        facts = replace(facts, confidence=cls.calculate_confidence(facts, contact, images))
        return PageExtraction(facts=facts, contact=contact, images=images, warnings=warnings)

    @classmethod
    def extract_contact(
        cls,
        *,
        soup: BeautifulSoup,
        selectors: dict[str, list[str]],
        final_url: str,
        warnings: list[str],
    ) -> ContactInfo:
        phone = None
        tel_link = soup.select_one("a[href^='tel:']")
        if tel_link is not None:
            phone = cls._normalize_phone(unquote(str(tel_link.get("href", ""))[4:]))
        if phone is None:
            phone = cls._first_parsed(
                cls._candidates(soup, selectors["phone"], cls.KEYWORDS["phone"], warnings),
                cls._parse_phone,
            )

        email = None
        mailto_link = soup.select_one("a[href^='mailto:']")
        if mailto_link is not None:
            address_part = unquote(str(mailto_link.get("href", ""))[7:]).split("?", 1)[0]
            match = EMAIL_REGEX.search(address_part)
            email = match.group(0) if match else None
        if email is None:
            email = cls._first_parsed(
                cls._candidates(soup, selectors["email"], cls.KEYWORDS["email"], warnings),
                cls._parse_email,
            )

        address = cls._first_parsed(
            cls._candidates(soup, selectors["address"], [], warnings),
            cls._parse_address,
        )
        website = cls._extract_link(soup, selectors["website"], final_url, warnings)
        booking_url = cls._extract_link(soup, selectors["booking_url"], final_url, warnings)
        if booking_url is None:
            booking_url = cls._booking_link_by_text(soup, final_url)

        contact = ContactInfo(
            phone=phone,
            email=email,
            address=address,
            website=website,
            booking_url=booking_url,
        )
        if not any((phone, email, address)):
            warnings.append("No contact details found on page")
        return contact

    @classmethod
    def extract_images(
        cls,
        *,
        soup: BeautifulSoup,
        selectors: dict[str, list[str]],
        final_url: str,
        warnings: list[str],
    ) -> CourseImages:
        buckets: dict[str, list[str]] = {}
        for bucket, limit in IMAGE_LIMITS.items():
            urls: list[str] = []
            for node in cls._select_all(soup, selectors[bucket], warnings):
                if node.name != "img":
                    node = node.find("img")
                    if node is None:
                        continue
                resolved = resolve_url(cls._image_source(node), final_url)
                if resolved and resolved not in urls:
                    urls.append(resolved)
                if len(urls) >= limit:
                    break
            buckets[bucket] = urls
        return CourseImages(
            hero=buckets["hero"],
            gallery=buckets["gallery"],
            course_map=buckets["course_map"],
        )

    @staticmethod
    def calculate_confidence(
        facts: ExtractedCourseFacts,
        contact: ContactInfo,
        images: CourseImages,
    ) -> int:
        """
        Weighted completeness score in [0, 100].

        Seven course facts weigh 10 each, four contact fields 5 each, and
        images up to 20 (hero 10, gallery 5, map 5).
        """

        course_fields = [
            facts.name,
            facts.description,
            facts.architect,
            facts.opening_year,
            facts.total_yardage,
            facts.par_score,
            facts.number_of_holes,
        ]
        contact_fields = [contact.phone, contact.email, contact.address, contact.website]

        max_score = len(course_fields) * 10 + len(contact_fields) * 5 + 20
        score = sum(10 for value in course_fields if value)
        score += sum(5 for value in contact_fields if value)
        score += 10 if images.hero else 0
        score += 5 if images.gallery else 0
        score += 5 if images.course_map else 0
        return max(0, min(100, round(score / max_score * 100)))

    @classmethod
    def _selectors_for(cls, field_name: str, target: ScrapeTarget) -> list[str]:
        hints = target.hints_for(field_name)
        if field_name == "gallery":
            hints.extend(target.hints_for("images"))
        return [*hints, *cls.DEFAULT_SELECTORS.get(field_name, [])]

    @classmethod
    def _extract_name(
        cls,
        soup: BeautifulSoup,
        *,
        target: ScrapeTarget,
        warnings: list[str],
    ) -> str:
        for hinted in cls._select_texts(soup, target.hints_for("course_name"), warnings):
            return hinted[:MAX_SHORT_TEXT_LENGTH]

        for text in cls._select_texts(soup, cls.DEFAULT_SELECTORS["course_name"], warnings):
            for part in TITLE_SEPARATOR_REGEX.split(text):
                part = part.strip()
                if part and len(part) <= MAX_SHORT_TEXT_LENGTH and VENUE_WORD_REGEX.search(part):
                    return part

        warnings.append("Course name not found on page; using target name")
        return clean_text(target.name)

    @classmethod
    def _candidates(
        cls,
        soup: BeautifulSoup,
        selectors: list[str],
        keywords: list[str],
        warnings: list[str],
    ) -> Iterator[Candidate]:
        for text in cls._select_texts(soup, selectors, warnings):
            yield Candidate(text=text, targeted=True)
        for text in cls._keyword_texts(soup, keywords):
            yield Candidate(text=text, targeted=False)

    @classmethod
    def _select_texts(
        cls,
        soup: BeautifulSoup,
        selectors: list[str],
        warnings: list[str],
    ) -> Iterator[str]:
        for node in cls._select_all(soup, selectors, warnings):
            if node.name == "meta":
                raw = str(node.get("content", ""))
            else:
                raw = node.get_text(" ", strip=True)
            text = clean_text(raw)
            if text:
                yield text

    @staticmethod
    def _select_all(
        soup: BeautifulSoup,
        selectors: list[str],
        warnings: list[str],
    ) -> Iterator[Tag]:
        for selector in selectors:
            try:
                nodes = soup.select(selector, limit=MAX_NODES_PER_SELECTOR)
            except SelectorSyntaxError:
                warnings.append(f"Ignored invalid selector: {selector}")
                log_event(logger, logging.WARNING, "invalid_selector", selector=selector)
                continue
            yield from nodes

    @staticmethod
    def _keyword_texts(soup: BeautifulSoup, keywords: list[str]) -> Iterator[str]:
        if not keywords:
            return
        lowered = [keyword.lower() for keyword in keywords]
        seen_parents: set[int] = set()
        for index, node in enumerate(soup.find_all(string=True)):
            if index >= MAX_KEYWORD_SCAN:
                break
            if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
                continue
            parent = node.parent
            if parent is None or parent.name in SKIPPED_TEXT_PARENTS:
                continue
            if not any(keyword in node.lower() for keyword in lowered):
                continue
            if id(parent) in seen_parents:
                continue
            seen_parents.add(id(parent))
            text = clean_text(parent.get_text(" ", strip=True))
            if text:
                yield text

    @staticmethod
    def _first_parsed(candidates: Iterator[Candidate], parse):
        for candidate in candidates:
            value = parse(candidate)
            if value is not None:
                return value
        return None

    @staticmethod
    def _parse_description(candidate: Candidate) -> str | None:
        text = candidate.text
        if not candidate.targeted and len(text) < 40:
            return None
        return truncate(text, MAX_DESCRIPTION_LENGTH)

    @staticmethod
    def _parse_architect(candidate: Candidate) -> str | None:
        match = ARCHITECT_REGEX.search(candidate.text)
        if match and match.group("name").lower() not in GENERIC_ARCHITECT_WORDS:
            return match.group("name").strip()
        if candidate.targeted:
            cleaned = ARCHITECT_PREFIX_REGEX.sub("", candidate.text).strip(" .,:;")
            if cleaned and len(cleaned) <= MAX_SHORT_TEXT_LENGTH:
                return cleaned
        return None

    @staticmethod
    def _parse_year(candidate: Candidate) -> int | None:
        match = YEAR_IN_CONTEXT_REGEX.search(candidate.text) or YEAR_REGEX.search(candidate.text)
        if match is None:
            return None
        year = int(match.group(1))
        return year if 1900 <= year <= 2099 else None

    @staticmethod
    def _parse_yardage(candidate: Candidate) -> int | None:
        match = YARDAGE_NEAR_UNIT_REGEX.search(candidate.text) or YARDAGE_LABEL_REGEX.search(
            candidate.text
        )
        if match is None and candidate.targeted:
            match = YARDAGE_BARE_REGEX.search(candidate.text)
        if match is None:
            return None
        yards = int(match.group(1).replace(",", ""))
        return yards if 1000 <= yards <= 99999 else None

    @staticmethod
    def _parse_par(candidate: Candidate) -> int | None:
        match = PAR_REGEX.search(candidate.text)
        if match is None:
            return None
        par = int(match.group(1))
        return par if 20 <= par <= 80 else None

    @staticmethod
    def _parse_holes(candidate: Candidate) -> int | None:
        match = HOLES_REGEX.search(candidate.text)
        if match is None:
            return None
        holes = int(match.group(1))
        return holes if 1 <= holes <= 72 else None

    @staticmethod
    def _parse_pricing(candidate: Candidate) -> str | None:
        cleaned = PRICING_PREFIX_REGEX.sub("", candidate.text).strip()
        match = PRICE_REGEX.search(cleaned)
        if match:
            return match.group(0).strip()
        if candidate.targeted and cleaned and len(cleaned) <= MAX_SHORT_TEXT_LENGTH:
            return cleaned
        return None

    @classmethod
    def _parse_phone(cls, candidate: Candidate) -> str | None:
        match = PHONE_REGEX.search(candidate.text)
        return cls._normalize_phone(match.group(0)) if match else None

    @staticmethod
    def _parse_email(candidate: Candidate) -> str | None:
        match = EMAIL_REGEX.search(candidate.text)
        return match.group(0) if match else None

    @staticmethod
    def _parse_address(candidate: Candidate) -> str | None:
        text = candidate.text
        if len(text) > MAX_ADDRESS_LENGTH:
            return None
        return text

    @staticmethod
    def _normalize_phone(value: str) -> str | None:
        kept = re.sub(r"[^\d+\-().\s]", "", value)
        kept = WHITESPACE_REGEX.sub(" ", kept).strip(" .-")
        digits = sum(char.isdigit() for char in kept)
        return kept if 7 <= digits <= 15 else None

    @classmethod
    def _extract_link(
        cls,
        soup: BeautifulSoup,
        selectors: list[str],
        final_url: str,
        warnings: list[str],
    ) -> str | None:
        for node in cls._select_all(soup, selectors, warnings):
            raw = node.get("content") if node.name == "meta" else node.get("href")
            if not raw:
                continue
            raw = str(raw).strip()
            if raw.lower().startswith(BOOKING_HREF_SKIP_PREFIXES):
                continue
            resolved = resolve_url(raw, final_url)
            if resolved:
                return resolved
        return None

    @classmethod
    def _booking_link_by_text(cls, soup: BeautifulSoup, final_url: str) -> str | None:
        keywords = cls.KEYWORDS["booking_url"]
        for anchor in soup.find_all("a", href=True, limit=500):
            text = clean_text(anchor.get_text(" ", strip=True)).lower()
            if not text or not any(keyword in text for keyword in keywords):
                continue
            href = str(anchor["href"]).strip()
            if href.lower().startswith(BOOKING_HREF_SKIP_PREFIXES):
                continue
            resolved = resolve_url(href, final_url)
            if resolved:
                return resolved
        return None

    @staticmethod
    def _image_source(node: Tag) -> str | None:
        for attribute in ("src", "data-src", "data-lazy-src"):
            value = node.get(attribute)
            if value and not str(value).startswith("data:"):
                return str(value).strip()
        srcset = node.get("srcset") or node.get("data-srcset")
        if srcset:
            first = str(srcset).split(",", 1)[0].strip().split(" ", 1)[0]
            if first and not first.startswith("data:"):
                return first
        return None


def clean_text(value: str) -> str:
    return WHITESPACE_REGEX.sub(" ", value).strip()


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3].rstrip() + "..."


def resolve_url(url: str | None, base_url: str) -> str | None:
    """
    Resolve `url` against `base_url`; only http(s) results are kept.
    """

    if not url:
        return None
    resolved = urljoin(base_url, url.strip())
    parsed = urlparse(resolved)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    return resolved
