"""
Detection of questions that reference a numbered section, chapter, article, etc.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_NUM = r"(\d+(?:\.\d+)*)"

_SECTION_PATTERNS: List[Tuple[re.Pattern[str], int]] = [
    (re.compile(rf"\bsection\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bsec\.?\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bchapter\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bpart\s+{_NUM}", re.I), 1),
    (re.compile(rf"\barticle\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bparagraph\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bclause\s+{_NUM}", re.I), 1),
    (re.compile(rf"\bitem\s+{_NUM}", re.I), 1),
    (re.compile(rf"\b{_NUM}\s+(?:section|chapter|part|article)\b", re.I), 1),
    (re.compile(rf"§\s*{_NUM}"), 1),
    (re.compile(r"^\s*(\d+\.\d+(?:\.\d+)*)\s*\??\s*$"), 1),
]


@dataclass
class SectionQuery:
    """A section reference found in a question."""

    number: str

    def matches(self, section_number: Optional[str]) -> bool:
        """True for the section itself or one of its subsections (21.5 -> 21.5, 21.5.1)."""
        if not section_number:
            return False
        return section_number == self.number or section_number.startswith(self.number + ".")


def detect_section_query(question: str) -> Optional[SectionQuery]:
    """Return the referenced section number, or None when the question names none."""
    for pat, grp in _SECTION_PATTERNS:
        m = pat.search(question)
        if not m:
            continue
        return SectionQuery(number=m.group(grp))
    return None


def enhance_section_question(question: str) -> str:
    """Prefix the question with 'Section N' so the embedding weights the reference."""
    section = detect_section_query(question)
    if section is None:
        return question
    return f"Section {section.number} {question}"
