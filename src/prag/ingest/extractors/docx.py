"""DOCX text extraction."""

from pathlib import Path


def extract_docx(file_path: Path) -> str:
    """Extract paragraph and table text using python-docx."""
    from docx import Document

    doc = Document(str(file_path))
    blocks = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                blocks.append(" | ".join(cells))
    return "\n\n".join(blocks)
