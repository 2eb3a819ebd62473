"""HTML text extraction."""

from pathlib import Path


def extract_html(file_path: Path) -> str:
    """Visible text of an HTML page, scripts and styles removed."""
    from bs4 import BeautifulSoup

    markup = file_path.read_text(encoding="utf-8", errors="replace")
    soup = BeautifulSoup(markup, "lxml")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)
