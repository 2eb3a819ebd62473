"""Text extractors for document formats that are not plain text."""

from .docx import extract_docx
from .html import extract_html
from .pdf import extract_pdf

EXTRACTORS = {
    "pdf": extract_pdf,
    "docx": extract_docx,
    "html": extract_html,
    "htm": extract_html,
}

__all__ = ["EXTRACTORS", "extract_docx", "extract_html", "extract_pdf"]
