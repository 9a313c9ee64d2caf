"""
Content Normalizer

Turns Confluence storage-format markup into an ordered list of Sections.

Pipeline (each step is total over any string)
---------------------------------------------
1. Strip CDATA wrappers, keeping the inner text.
2. Lift `code` structured macros out as opaque snippets, leaving ordinal
   placeholders behind (before any tag stripping, so code is never mangled).
   h2/h3 headings are lifted the same way so the splitter can see them.
3. Strip remaining tags and decode entities.
4. Remove symbol/pictograph characters.
5. Collapse whitespace runs and trim.
6. Restore each code placeholder as a fenced block on its own lines.
7. Split at headings, markdown heading prefixes and numbered-list items.

Placeholders are restored by index, never by searching for snippet text, so
two snippets sharing a prefix can not be swapped.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup
from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..core.errors import NormalizationError
from ..embeddings.models import Section

logger = logging.getLogger("rag.normalizer")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

SENTINEL_HEADER = "Introduction"
HEADER_MAX_CHARS = 50
DEFAULT_MAX_SECTION_CHARS = 4000

_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL | re.IGNORECASE)

_CODE_MACRO_RE = re.compile(
    r"<ac:structured-macro\b[^>]*\bac:name\s*=\s*[\"']code[\"'][^>]*>"
    r"(?P<inner>.*?)"
    r"</ac:structured-macro\s*>",
    re.DOTALL | re.IGNORECASE,
)
_CODE_BODY_RE = re.compile(
    r"<ac:plain-text-body\b[^>]*>(?P<code>.*?)</ac:plain-text-body\s*>",
    re.DOTALL | re.IGNORECASE,
)
_HEADING_RE = re.compile(
    r"<h(?P<level>[23])\b[^>]*>(?P<inner>.*?)</h(?P=level)\s*>",
    re.DOTALL | re.IGNORECASE,
)

# Dingbats, the BMP private use area, and everything from the
# supplementary pictograph planes upwards.
_SYMBOL_RE = re.compile("[\u2700-\u27BF\uE000-\uF8FF\U0001F000-\U0010FFFF]")
_WHITESPACE_RE = re.compile(r"\s{2,}")

_CODE_TOKEN = "@@CODE_BLOCK_{}@@"
_HEADING_TOKEN = "@@HEADING_{}@@"
_CODE_PLACEHOLDER_RE = re.compile(r"[ \t]*@@CODE_BLOCK_(\d+)@@[ \t]*")

_BOUNDARY_RE = re.compile(
    r"@@HEADING_(?P<heading>\d+)@@"
    r"|(?<!\S)(?P<markdown>#{2,3})[ \t]+"
    r"|(?<!\S)(?P<item>\d+\.)[ \t]"
)


# ---------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------

def strip_cdata(text: str) -> str:
    """Replace every `<![CDATA[...]]>` wrapper with its inner text."""
    return _CDATA_RE.sub(lambda m: m.group(1).strip(), text)


def extract_code_blocks(text: str) -> Tuple[str, List[str]]:
    """
    Replace code macros with `@@CODE_BLOCK_<n>@@` placeholders.

    Returns the rewritten text and the snippets, where snippet `n` belongs to
    placeholder `n`. Macros with an empty body are dropped entirely.
    """
    snippets: List[str] = []

    def _replace(match: re.Match) -> str:
        body = _CODE_BODY_RE.search(match.group("inner"))
        code = html.unescape(body.group("code")).strip() if body else ""
        if not code:
            return " "
        snippets.append(code)
        return f" {_CODE_TOKEN.format(len(snippets) - 1)} "

    return _CODE_MACRO_RE.sub(_replace, text), snippets


def extract_headings(text: str) -> Tuple[str, List[str]]:
    """Replace h2/h3 elements with `@@HEADING_<n>@@` placeholders."""
    headings: List[str] = []

    def _replace(match: re.Match) -> str:
        headings.append(clean_inline(match.group("inner")))
        return f" {_HEADING_TOKEN.format(len(headings) - 1)} "

    return _HEADING_RE.sub(_replace, text), headings


def strip_markup(text: str) -> str:
    """Drop all tags and decode HTML entities."""
    if "<" not in text and "&" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text(" ")


def strip_symbols(text: str) -> str:
    """Remove pictographs; the gap is closed by the whitespace collapse."""
    return _SYMBOL_RE.sub(" ", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_inline(fragment: str) -> str:
    """Steps 3-5 applied to a small fragment such as a heading."""
    return collapse_whitespace(strip_symbols(strip_markup(fragment)))


def restore_code_blocks(text: str, snippets: List[str]) -> str:
    """Swap placeholders back for fenced code, each fence on its own line."""
    return _CODE_PLACEHOLDER_RE.sub(
        lambda m: f"\n```\n{snippets[int(m.group(1))]}\n```\n",
        text,
    )


# ---------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------

class ContentNormalizer:
    """
    Stateless markup-to-sections converter.

    Parameters
    ----------
    max_section_chars : int
        Sections longer than this are split into "(part N)" sub-sections so
        every chunk stays within the embedding model's context.
    """

    def __init__(self, max_section_chars: int = DEFAULT_MAX_SECTION_CHARS) -> None:
        self.max_section_chars = max_section_chars
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=max_section_chars,
            chunk_overlap=min(200, max_section_chars // 10),
            length_function=len,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

    def normalize(self, raw: Union[str, bytes, None]) -> List[Section]:
        """
        Convert raw storage-format markup into ordered, uniquely headed
        Sections. Empty or whitespace-only input yields no Sections.
        """
        text = self._coerce(raw)
        if not text.strip():
            return []

        text = strip_cdata(text)
        text, snippets = extract_code_blocks(text)
        text, headings = extract_headings(text)
        text = collapse_whitespace(strip_symbols(strip_markup(text)))

        sections: List[Section] = []
        for header, body in self._split(text, snippets, headings):
            sections.extend(self._fit(header, body))

        return self._deduplicate_headers(sections)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(raw: Union[str, bytes, None]) -> str:
        if raw is None:
            return ""
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        if isinstance(raw, str):
            return raw
        raise NormalizationError(
            f"Cannot normalize content of type {type(raw).__name__}"
        )

    def _split(
        self,
        text: str,
        snippets: List[str],
        headings: List[str],
    ) -> List[Tuple[str, str]]:
        """
        Cut placeholder text at section boundaries, then restore code per
        fragment so a boundary never falls inside a code block.
        """
        raw_fragments: List[Tuple[Optional[str], str]] = []
        header: Optional[str] = None
        start = 0

        for match in _BOUNDARY_RE.finditer(text):
            raw_fragments.append((header, text[start:match.start()]))
            if match.group("heading") is not None:
                header = headings[int(match.group("heading"))]
                start = match.end()
            elif match.group("markdown"):
                header = None
                start = match.end()
            else:
                # List items keep their "1. " prefix in the section text.
                header = None
                start = match.start()
        raw_fragments.append((header, text[start:]))

        fragments: List[Tuple[str, str]] = []
        for index, (heading, fragment) in enumerate(raw_fragments):
            body = restore_code_blocks(fragment, snippets).strip()
            if not body:
                continue

            if heading:
                label = heading
            elif index == 0:
                label = SENTINEL_HEADER
            else:
                prose = collapse_whitespace(_CODE_PLACEHOLDER_RE.sub(" ", fragment))
                label = (prose or body)[:HEADER_MAX_CHARS].strip()

            fragments.append((label, body))

        return fragments

    def _fit(self, header: str, body: str) -> List[Section]:
        if len(body) <= self.max_section_chars:
            return [Section(header=header, text=body)]

        parts = [p.strip() for p in self._splitter.split_text(body) if p.strip()]
        logger.debug("Section %r split into %d parts", header, len(parts))
        return [
            Section(header=f"{header} (part {n})", text=part)
            for n, part in enumerate(parts, start=1)
        ]

    @staticmethod
    def _deduplicate_headers(sections: List[Section]) -> List[Section]:
        """Suffix repeated headers so each section maps to its own row."""
        seen: Dict[str, int] = {}
        unique: List[Section] = []

        for section in sections:
            count = seen.get(section.header, 0) + 1
            seen[section.header] = count
            if count == 1:
                unique.append(section)
                continue

            label = f"{section.header} ({count})"
            while label in seen:
                count += 1
                label = f"{section.header} ({count})"
            seen[section.header] = count
            seen[label] = 1
            unique.append(Section(header=label, text=section.text))

        return unique
