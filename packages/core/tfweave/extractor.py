"""Template extractor: isolates named template bodies from free-form source text.

A template opens with a line ``template <name> do`` (the name may carry a
leading ``:`` or be quoted) and closes at the next line that is exactly
``end`` at column 0. Everything between is the body, returned verbatim apart
from its common indentation. Bodies are never parsed here.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_OPEN = re.compile(r"""^\s*template\s+(?::?([A-Za-z_][\w-]*)|"([^"]+)"|'([^']+)')\s+do\s*(?:#.*)?$""")
_CLOSE = re.compile(r"^end\s*(?:#.*)?$")


@dataclass(frozen=True)
class TemplateExtractionResult:
    name: str
    content: str
    line: int  # 1-based line of the opening marker

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines())

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "line": self.line, "line_count": self.line_count}


class TemplateExtractor:
    def extract(self, source_text: str) -> list[TemplateExtractionResult]:
        """Templates in source order. No markers means an empty list."""
        results: list[TemplateExtractionResult] = []
        lines = source_text.splitlines()
        i = 0
        while i < len(lines):
            m = _OPEN.match(lines[i])
            if not m:
                i += 1
                continue
            name = next(g for g in m.groups() if g is not None)
            close = next((j for j in range(i + 1, len(lines)) if _CLOSE.match(lines[j])), None)
            nested = next((j for j in range(i + 1, close or len(lines)) if _OPEN.match(lines[j])), None)
            if close is None or nested is not None:
                logger.warning("Template '%s' at line %d has no closing 'end', skipping", name, i + 1)
                i = nested if nested is not None else i + 1
                continue
            body = textwrap.dedent("\n".join(lines[i + 1 : close])).strip("\n")
            results.append(TemplateExtractionResult(name=name, content=body, line=i + 1))
            logger.debug("Extracted template '%s' (%d lines)", name, close - i - 1)
            i = close + 1
        return results

    def extract_file(self, path: str | Path) -> list[TemplateExtractionResult]:
        return self.extract(Path(path).read_text())


def extract(source_text: str) -> list[TemplateExtractionResult]:
    return TemplateExtractor().extract(source_text)
