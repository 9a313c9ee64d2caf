"""
Content Normalizer Tests

Covers the markup-to-sections pipeline:
- Heading and list splitting
- Code block extraction and restoration
- Symbol and whitespace cleanup
- Input coercion and header uniqueness
"""

import pytest

from confluence_rag.content.normalizer import (
    ContentNormalizer,
    SENTINEL_HEADER,
    HEADER_MAX_CHARS,
    extract_code_blocks,
    restore_code_blocks,
    strip_cdata,
)
from confluence_rag.core.errors import NormalizationError


def code_macro(code: str) -> str:
    return (
        '<ac:structured-macro ac:name="code" ac:schema-version="1">'
        '<ac:parameter ac:name="language">python</ac:parameter>'
        f"<ac:plain-text-body><![CDATA[{code}]]></ac:plain-text-body>"
        "</ac:structured-macro>"
    )


@pytest.fixture
def normalizer():
    return ContentNormalizer()


class TestSplitting:

    def test_html_headings_become_section_headers(self, normalizer):
        sections = normalizer.normalize("<h2>A</h2>text1<h3>B</h3>text2")

        assert [(s.header, s.text) for s in sections] == [("A", "text1"), ("B", "text2")]

    def test_text_before_first_heading_gets_sentinel(self, normalizer):
        sections = normalizer.normalize("<p>Welcome here</p><h2>Setup</h2><p>Install it</p>")

        assert sections[0].header == SENTINEL_HEADER
        assert sections[0].text == "Welcome here"
        assert sections[1].header == "Setup"
        assert sections[1].text == "Install it"

    def test_numbered_items_split_and_keep_prefix(self, normalizer):
        sections = normalizer.normalize("<p>Steps below</p><p>1. Open the door</p><p>2. Walk in</p>")

        assert [s.text for s in sections] == ["Steps below", "1. Open the door", "2. Walk in"]
        assert sections[0].header == SENTINEL_HEADER
        assert sections[1].header == "1. Open the door"

    def test_markdown_heading_markers_split(self, normalizer):
        sections = normalizer.normalize("Intro text ## Details go here")

        assert len(sections) == 2
        assert sections[0].header == SENTINEL_HEADER
        assert sections[1].text == "Details go here"

    def test_header_prefix_is_capped(self, normalizer):
        long_item = "1. " + "word " * 40
        sections = normalizer.normalize(f"<p>Intro</p><p>{long_item}</p>")

        assert len(sections[1].header) <= HEADER_MAX_CHARS
        assert sections[1].text.startswith("1. word word")

    def test_empty_fragments_are_dropped(self, normalizer):
        sections = normalizer.normalize("<h2>Empty</h2><h2>Full</h2><p>body</p>")

        assert [(s.header, s.text) for s in sections] == [("Full", "body")]

    def test_repeated_headers_are_made_unique(self, normalizer):
        sections = normalizer.normalize("<h2>FAQ</h2>one<h2>FAQ</h2>two<h2>FAQ</h2>three")

        assert [s.header for s in sections] == ["FAQ", "FAQ (2)", "FAQ (3)"]


class TestCodeBlocks:

    def test_code_is_fenced_on_its_own_lines(self, normalizer):
        raw = "<p>Run:</p>" + code_macro("print('hi')")
        sections = normalizer.normalize(raw)

        assert len(sections) == 1
        assert sections[0].text == "Run:\n```\nprint('hi')\n```"

    def test_markup_inside_code_is_preserved(self, normalizer):
        raw = "<p>Example</p>" + code_macro("<div class='x'>a &lt; b</div>")
        text = normalizer.normalize(raw)[0].text

        assert "<div class='x'>a < b</div>" in text

    def test_snippets_sharing_a_prefix_keep_their_order(self, normalizer):
        first = "SELECT * FROM users WHERE id = 1"
        second = "SELECT * FROM users WHERE id = 2"
        raw = "<p>a</p>" + code_macro(first) + "<p>b</p>" + code_macro(second)
        text = normalizer.normalize(raw)[0].text

        assert text.index(first) < text.index(second)
        assert text.count("```") == 4

    def test_list_markers_inside_code_do_not_split(self, normalizer):
        raw = "<p>Script</p>" + code_macro("x = 1\n2. not a list\n## not a heading")
        sections = normalizer.normalize(raw)

        assert len(sections) == 1
        assert "2. not a list" in sections[0].text

    def test_placeholders_are_ordinal(self):
        text, snippets = extract_code_blocks(strip_cdata(code_macro("a") + code_macro("b")))

        assert snippets == ["a", "b"]
        assert "@@CODE_BLOCK_0@@" in text
        assert "@@CODE_BLOCK_1@@" in text
        restored = restore_code_blocks(text, snippets)
        assert restored.index("```\na\n```") < restored.index("```\nb\n```")

    def test_cdata_is_unwrapped(self):
        assert strip_cdata("<![CDATA[ keep me ]]>") == "keep me"


class TestCleanup:

    def test_entities_decoded_and_tags_removed(self, normalizer):
        sections = normalizer.normalize("<p>Fish &amp; <b>chips</b></p>")

        assert sections[0].text == "Fish & chips"

    def test_pictographs_removed(self, normalizer):
        sections = normalizer.normalize("<p>Deploy \U0001F680 now ✔ done</p>")

        assert sections[0].text == "Deploy now done"

    def test_whitespace_collapsed(self, normalizer):
        sections = normalizer.normalize("<p>a    b\n\n\tc</p>")

        assert sections[0].text == "a b c"


class TestInputs:

    def test_none_yields_nothing(self, normalizer):
        assert normalizer.normalize(None) == []

    def test_blank_yields_nothing(self, normalizer):
        assert normalizer.normalize("   \n ") == []
        assert normalizer.normalize("<p> </p>") == []

    def test_bytes_are_decoded(self, normalizer):
        sections = normalizer.normalize("<p>café</p>".encode("utf-8"))

        assert sections[0].text == "café"

    def test_unsupported_type_raises(self, normalizer):
        with pytest.raises(NormalizationError):
            normalizer.normalize(42)

    def test_oversized_sections_are_split_into_parts(self):
        normalizer = ContentNormalizer(max_section_chars=60)
        body = " ".join(f"word{i}" for i in range(60))
        sections = normalizer.normalize(f"<h2>Long</h2><p>{body}</p>")

        assert len(sections) > 1
        assert [s.header for s in sections][:2] == ["Long (part 1)", "Long (part 2)"]
        assert all(len(s.text) <= 60 for s in sections)
