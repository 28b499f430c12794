"""Tests for Bible-verse citation detection."""

from app.cms.verses import TextPart, find_verse_citations, split_verse_citations


class TestFindCitations:
    def test_simple_citation(self):
        assert find_verse_citations("Read John 3:16 today") == ["John 3:16"]

    def test_numbered_book_and_range(self):
        text = "See 1 Corinthians 13:4-7 and 2 Timothy 3:16."
        assert find_verse_citations(text) == ["1 Corinthians 13:4-7", "2 Timothy 3:16"]

    def test_case_insensitive(self):
        assert find_verse_citations("psalm 23:1") == ["psalm 23:1"]

    def test_no_match_inside_words(self):
        assert find_verse_citations("Johnson 3:16") == []

    def test_requires_chapter_and_verse(self):
        assert find_verse_citations("Genesis 1 is the start") == []


class TestSplit:
    def test_parts_reassemble_input(self):
        text = "In the beginning (Genesis 1:1) and later Revelation 22:21 ends it."
        parts = split_verse_citations(text)
        assert "".join(p.content for p in parts) == text
        assert [p.content for p in parts if p.type == "verse"] == ["Genesis 1:1", "Revelation 22:21"]

    def test_plain_text(self):
        assert split_verse_citations("no citations here") == [TextPart("text", "no citations here")]

    def test_citation_only(self):
        assert split_verse_citations("Romans 8:28") == [TextPart("verse", "Romans 8:28")]

    def test_empty(self):
        assert split_verse_citations("") == [TextPart("text", "")]
