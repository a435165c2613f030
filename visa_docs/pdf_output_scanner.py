from __future__ import annotations

import re
from io import BytesIO
from pathlib import Path
from typing import Iterable, Union

# template markup or unfilled values that must never reach a signed document
FORBIDDEN_PATTERNS = [
    re.compile(r"</?[a-zA-Z][a-zA-Z0-9]*(\s[^<>]*)?/?>"),
    re.compile(r"&(?:amp|lt|gt|quot|nbsp|#39);"),
    re.compile(r"\{\{[^}]*\}\}"),
    re.compile(r"\bNone\b"),
    re.compile(r"\bnull\b"),
]


def extract_pdf_text(pdf: Union[bytes, Path]) -> str:
    from pypdf import PdfReader

    source = BytesIO(pdf) if isinstance(pdf, (bytes, bytearray)) else str(pdf)
    reader = PdfReader(source)
    return "\n".join((page.extract_text() or "") for page in reader.pages)


def scan_forbidden_patterns(text: str, patterns: Iterable[re.Pattern] = FORBIDDEN_PATTERNS) -> list[dict[str, str]]:
    findings: list[dict[str, str]] = []
    for pattern in patterns:
        for match in pattern.finditer(text or ""):
            start = max(0, match.start() - 32)
            end = min(len(text), match.end() + 32)
            findings.append(
                {
                    "pattern": pattern.pattern,
                    "match": match.group(0),
                    "context": text[start:end].replace("\n", " "),
                }
            )
    return findings
