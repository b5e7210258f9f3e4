"""
Tests for product_view.py — display values and fallbacks for the product card.
"""
from __future__ import annotations

from coffee_analysis import REUPLOAD_RECORD, parse_analysis
from product_view import (
    DEFAULT_BREW_METHOD,
    DEFAULT_COUNTRY,
    DEFAULT_DESCRIPTION,
    DEFAULT_NOTES_TEXT,
    build_product_view,
    clean_description,
)


class TestBuildProductView:
    def test_fallbacks_for_empty_record(self):
        view = build_product_view(parse_analysis("Nice beans"))
        assert view.country == DEFAULT_COUNTRY
        assert view.notes == ()
        assert view.notes_fallback == DEFAULT_NOTES_TEXT
        assert view.brew_method == DEFAULT_BREW_METHOD
        assert view.description == DEFAULT_DESCRIPTION
        assert view.roast_dots == (True, True, True, False, False)

    def test_at_most_four_notes(self):
        text = "Notes: plum, fig, toffee, cocoa, almond, cherry"
        view = build_product_view(parse_analysis(text), text)
        assert len(view.notes) == 4
        assert view.notes[0] == "plum"
        assert view.notes_fallback is None

    def test_values_from_record(self):
        text = "Circle number 5 from the left appears filled. Origin: Kenya. Brew: V60"
        view = build_product_view(parse_analysis(text), text)
        assert view.roast_level == "Dark (5/5)"
        assert view.roast_dots == (True,) * 5
        assert view.country == "Kenya"
        assert view.brew_method == "V60"

    def test_sentinel(self):
        view = build_product_view(REUPLOAD_RECORD)
        assert view.reupload_required is True
        assert view.country == "NODE Coffee Required"


class TestCleanDescription:
    def test_strips_markdown_and_whitespace(self):
        assert clean_description("**Bold**  text\n\nhere ") == "Bold text here"

    def test_empty(self):
        assert clean_description("") == ""
