"""Tests for the heuristic patent document parsers."""
from conftest import PATENT_A, PATENT_B

from src.patents.extraction import (
    UNKNOWN_PATENT_NUMBER,
    abstract_after_headings,
    abstract_from_caps_heading,
    abstract_from_heading,
    abstract_from_prefix,
    extract_abstract,
    extract_metadata,
    extract_patent_number,
    extract_sections,
    patent_number_from_grant_info,
)
from src.patents.schemas import SectionName


class TestExtractAbstract:
    def test_markdown_heading(self):
        abstract = extract_abstract(PATENT_A)
        assert abstract.startswith("A solid-state lithium battery")
        assert "## Description" not in abstract

    def test_short_heading_body_is_rejected(self):
        assert abstract_from_heading("## Abstract\n\nToo short.\n\n## Claims\n\n1. x") is None

    def test_caps_heading(self):
        text = "ABSTRACT\n\n" + "An apparatus for charging electric vehicles at high power levels safely. " + "\n\nCLAIMS 1. x"
        assert abstract_from_caps_heading(text).startswith("An apparatus for charging")

    def test_heading_run_spanning_lines(self):
        body = "A wireless charging pad aligns the receiver coil of a parked vehicle using magnetic guidance and load sensing."
        text = "## Wireless charging pad\nfor electric vehicles\n\n" + body
        assert abstract_after_headings(text) == body

    def test_falls_back_to_prefix(self):
        assert extract_abstract("Short text") == "Short text..."

    def test_never_empty(self):
        assert extract_abstract("") == "No abstract available."
        assert abstract_from_prefix("   ") == "No abstract available."


class TestExtractPatentNumber:
    def test_structured_field(self):
        assert extract_patent_number(PATENT_A) == "US 11234567 B2"

    def test_grant_information_block(self):
        text = "Patent Grant Information\nGranted as US 9,111,222 B1 on 2015-08-18"
        assert patent_number_from_grant_info(text) == "US 9111222 B1"

    def test_loose_match_in_body(self):
        assert extract_patent_number("See also US 8,000,001 A for background.") == "US 8000001 A"

    def test_title_fallback(self):
        assert extract_patent_number("no number here", "Battery US 9,876,543 B1") == "US 9876543 B1"

    def test_unknown(self):
        assert extract_patent_number("nothing useful", "Untitled") == UNKNOWN_PATENT_NUMBER


class TestExtractMetadata:
    def test_all_fields(self):
        metadata = extract_metadata(PATENT_A)
        assert metadata.patent_number == "US 11234567 B2"
        assert metadata.publication_date == "2023-05-02"
        assert metadata.application_number == "16987654"
        assert metadata.filing_date == "2021-01-15"
        assert metadata.claims_count == 20
        assert metadata.assignees[0].name == "QuantumScape Corporation"
        assert metadata.assignees[0].location == "San Jose, CA"
        assert metadata.inventors == ["Jane Smith", "John Doe"]

    def test_missing_fields_are_none(self):
        metadata = extract_metadata(PATENT_B)
        assert metadata.application_number is None
        assert metadata.claims_count is None
        assert metadata.inventors is None

    def test_payload_uses_camel_case(self):
        payload = extract_metadata(PATENT_A).to_payload()
        assert payload["claimsCount"] == 20
        assert "claims_count" not in payload


class TestExtractSections:
    def test_only_requested(self):
        sections = extract_sections(PATENT_A, [SectionName.CLAIMS])
        assert sections.claims.startswith("1. A battery comprising")
        assert sections.abstract is None
        assert sections.description is None

    def test_all_marker_and_omitted(self):
        for requested in (None, [], ["all"]):
            sections = extract_sections(PATENT_A, requested)
            assert sections.abstract
            assert sections.claims
            assert sections.description.startswith("The invention relates")

    def test_absent_section_is_none(self):
        sections = extract_sections(PATENT_B, ["citations", "drawings"])
        assert sections.citations is None
        assert sections.drawings is None
