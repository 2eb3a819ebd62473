"""PDF text extraction."""

import re
from pathlib import Path

_HYPHEN_BREAK = re.compile(r"(\w)-\n(\w)")


def extract_pdf(file_path: Path) -> str:
    """Extract the text of every page using pypdf, one blank line between pages."""
    from pypdf import PdfReader

    reader = PdfReader(str(file_path))
    pages = []
    for page in reader.pages:
        text = page.extract_text()
        if text and text.strip():
            # Rejoin words hyphenated across a line break
            pages.append(_HYPHEN_BREAK.sub(r"\1\2", text.strip()))
    return "\n\n".join(pages)
