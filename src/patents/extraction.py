"""Heuristic parsing of patent documents returned by the search provider.

Documents arrive as loosely structured markdown: a header block of
``**Field:** value`` lines, ``###`` lists for assignees/inventors and ``##``
sections for the abstract, description, claims and so on. Each pattern below
is a small function that returns ``None`` when it does not apply, and the
public functions walk those cascades in order. Nothing here raises on odd
input; missing fields are normal.
"""

import re
from typing import Callable, Iterable, List, Optional

from src.patents.schemas import Assignee, PatentMetadata, PatentSections, SectionName

UNKNOWN_PATENT_NUMBER = "Unknown"

ABSTRACT_MIN_CHARS = 50
ABSTRACT_PREFIX_CHARS = 400

_FLAGS = re.IGNORECASE | re.DOTALL

_US_NUMBER = r"US\s*[\d,]+\s*[A-Z]\d*"

_ABSTRACT_HEADING_RE = re.compile(r"##\s*Abstract\s*\n\n(.*?)(?=\n##|\Z)", _FLAGS)
_ABSTRACT_LABEL_RE = re.compile(r"Abstract:\s*\n\n(.*?)(?=\n##|\Z)", _FLAGS)
_ABSTRACT_CAPS_RE = re.compile(
    r"ABSTRACT\s*\n\n(.*?)(?=\n##|DESCRIPTION|CLAIMS|BACKGROUND|\Z)", _FLAGS
)
_ABSTRACT_AFTER_HEADINGS_RE = re.compile(
    r"(?:##\s*[\w\s-]+\n\n)+(.{100,1000}?)(?=\n##\s*Description|\Z)", _FLAGS
)

_PATENT_NUMBER_FIELD_RE = re.compile(r"\*\*Patent Number:\*\*\s*(" + _US_NUMBER + r")", re.IGNORECASE)
_GRANT_INFO_RE = re.compile(r"Patent Grant Information.*?US\s*([\d,]+\s*[A-Z]\d*)", _FLAGS)
_LOOSE_US_NUMBER_RE = re.compile(r"\b" + _US_NUMBER, re.IGNORECASE)

_PUBLICATION_DATE_RE = re.compile(r"\*\*Publication Date:\*\*\s*([\d-]+)", re.IGNORECASE)
_APPLICATION_NUMBER_RE = re.compile(r"\*\*Application Number:\*\*\s*([\d,]+)", re.IGNORECASE)
_FILING_DATE_RE = re.compile(r"\*\*Filing Date:\*\*\s*([\d-]+)", re.IGNORECASE)
_CLAIMS_COUNT_RE = re.compile(r"\*\*Number of Claims:\*\*\s*(\d+)", re.IGNORECASE)
_ASSIGNEES_RE = re.compile(r"###\s*Assignees\s*\n(.*?)(?=\n#{1,3}|\Z)", _FLAGS)
_INVENTORS_RE = re.compile(r"###\s*Inventors\s*\n(.*?)(?=\n#{1,3}|\Z)", _FLAGS)
_PARENTHESISED_RE = re.compile(r"\(([^)]+)\)")

_CLAIMS_RE = re.compile(r"##\s*Claims?\s*\n\n(.*?)(?=\n##|\Z)", _FLAGS)
_DESCRIPTION_RES = (
    re.compile(r"##\s*Description\s*\n\n(.*?)(?=\n##\s*Claims|\Z)", _FLAGS),
    re.compile(r"##\s*Detailed Description\s*\n\n(.*?)(?=\n##|\Z)", _FLAGS),
)
_DRAWINGS_RE = re.compile(r"##\s*Description of Drawings\s*\n\n(.*?)(?=\n##|\Z)", _FLAGS)
_CITATIONS_RE = re.compile(r"##\s*Citations?[^\n]*\n\n(.*?)(?=\n##|\Z)", _FLAGS)

_HEADER_LINE_PREFIXES = (
    "**Patent Number",
    "**Publication Date",
    "**Application Number",
    "**Filing Date",
)


def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    if match and match.group(1):
        return match.group(1).strip()
    return None


def _clean_number(raw: str) -> str:
    return raw.replace(",", "").strip()


# ---------------------------------------------------------------------------
# Abstract
# ---------------------------------------------------------------------------

def abstract_from_heading(text: str) -> Optional[str]:
    return _long_enough(_first_group(_ABSTRACT_HEADING_RE, text))


def abstract_from_label(text: str) -> Optional[str]:
    return _long_enough(_first_group(_ABSTRACT_LABEL_RE, text))


def abstract_from_caps_heading(text: str) -> Optional[str]:
    return _long_enough(_first_group(_ABSTRACT_CAPS_RE, text))


def abstract_after_headings(text: str) -> Optional[str]:
    """Body text following the leading headings, up to the Description."""
    return _first_group(_ABSTRACT_AFTER_HEADINGS_RE, text)


def abstract_from_line_scan(text: str) -> Optional[str]:
    collected: List[str] = []
    length = 0
    collecting = False
    for line in text.split("\n"):
        if line.startswith("#") and "Patent" in line:
            continue
        if line.startswith(_HEADER_LINE_PREFIXES):
            continue
        if "## Abstract" in line:
            collecting = True
            continue
        if line.startswith("## Description") or line.startswith("## Claims"):
            break
        if collecting and line.strip():
            collected.append(line)
            length += len(line) + 1
            if length > ABSTRACT_PREFIX_CHARS:
                break
    return " ".join(collected).strip() or None


def abstract_from_prefix(text: str) -> str:
    prefix = text[:ABSTRACT_PREFIX_CHARS].strip()
    if not prefix:
        return "No abstract available."
    return prefix + "..."


def _long_enough(candidate: Optional[str]) -> Optional[str]:
    if candidate and len(candidate) > ABSTRACT_MIN_CHARS:
        return candidate
    return None


ABSTRACT_CASCADE: tuple[Callable[[str], Optional[str]], ...] = (
    abstract_from_heading,
    abstract_from_label,
    abstract_from_caps_heading,
    abstract_after_headings,
    abstract_from_line_scan,
)


def extract_abstract(text: str) -> str:
    """Best available abstract; never empty."""
    text = text or ""
    for strategy in ABSTRACT_CASCADE:
        abstract = strategy(text)
        if abstract:
            return abstract
    return abstract_from_prefix(text)


# ---------------------------------------------------------------------------
# Patent number
# ---------------------------------------------------------------------------

def patent_number_from_field(text: str) -> Optional[str]:
    match = _PATENT_NUMBER_FIELD_RE.search(text)
    return _clean_number(match.group(1)) if match else None


def patent_number_from_grant_info(text: str) -> Optional[str]:
    match = _GRANT_INFO_RE.search(text)
    return _clean_number("US " + match.group(1)) if match else None


def patent_number_loose(text: str) -> Optional[str]:
    match = _LOOSE_US_NUMBER_RE.search(text)
    return _clean_number(match.group(0)) if match else None


def extract_patent_number(text: str, fallback_title: Optional[str] = None) -> str:
    """Patent number used as the cache key; ``"Unknown"`` when nothing matches."""
    text = text or ""
    for strategy in (patent_number_from_field, patent_number_from_grant_info, patent_number_loose):
        number = strategy(text)
        if number:
            return number
    if fallback_title:
        number = patent_number_loose(fallback_title)
        if number:
            return number
    return UNKNOWN_PATENT_NUMBER


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def _parse_assignee_line(line: str) -> Assignee:
    cleaned = re.sub(r"^-\s*\*\*", "", line.strip()).replace("**", "", 1)
    location = _PARENTHESISED_RE.search(cleaned)
    name = _PARENTHESISED_RE.sub("", cleaned, count=1).strip()
    return Assignee(name=name, location=location.group(1) if location else None)


def extract_assignees(text: str) -> Optional[List[Assignee]]:
    block = _first_group(_ASSIGNEES_RE, text)
    if block is None:
        return None
    return [
        _parse_assignee_line(line)
        for line in block.split("\n")
        if line.strip().startswith("-")
    ]


def extract_inventors(text: str) -> Optional[List[str]]:
    block = _first_group(_INVENTORS_RE, text)
    if block is None:
        return None
    return [
        line.strip().lstrip("-").replace("**", "").strip()
        for line in block.split("\n")
        if line.strip().startswith("-")
    ]


def extract_metadata(text: str) -> PatentMetadata:
    text = text or ""
    number_match = _PATENT_NUMBER_FIELD_RE.search(text)
    application_number = _first_group(_APPLICATION_NUMBER_RE, text)
    claims_count = _first_group(_CLAIMS_COUNT_RE, text)
    return PatentMetadata(
        patent_number=number_match.group(1).replace(",", "") if number_match else None,
        publication_date=_first_group(_PUBLICATION_DATE_RE, text),
        application_number=_clean_number(application_number) if application_number else None,
        filing_date=_first_group(_FILING_DATE_RE, text),
        assignees=extract_assignees(text),
        inventors=extract_inventors(text),
        claims_count=int(claims_count) if claims_count else None,
    )


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

def extract_claims(text: str) -> Optional[str]:
    return _first_group(_CLAIMS_RE, text)


def extract_description(text: str) -> Optional[str]:
    for pattern in _DESCRIPTION_RES:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def extract_drawings(text: str) -> Optional[str]:
    return _first_group(_DRAWINGS_RE, text)


def extract_citations(text: str) -> Optional[str]:
    return _first_group(_CITATIONS_RE, text)


_SECTION_EXTRACTORS: dict[SectionName, Callable[[str], Optional[str]]] = {
    SectionName.ABSTRACT: extract_abstract,
    SectionName.CLAIMS: extract_claims,
    SectionName.DESCRIPTION: extract_description,
    SectionName.DRAWINGS: extract_drawings,
    SectionName.CITATIONS: extract_citations,
}


def extract_sections(
    text: str, requested: Optional[Iterable[SectionName | str]] = None
) -> PatentSections:
    """Pull the requested sections; all of them when ``requested`` is empty or has ``all``."""
    text = text or ""
    wanted = {SectionName(name) for name in requested} if requested else set()
    want_all = not wanted or SectionName.ALL in wanted

    found = {}
    for name, extractor in _SECTION_EXTRACTORS.items():
        if want_all or name in wanted:
            found[name.value] = extractor(text)
    return PatentSections(**found)
