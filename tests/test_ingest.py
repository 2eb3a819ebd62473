"""Tests for the ingestion pipeline."""

import tempfile
from pathlib import Path

from prag.ingest.chunker import chunk_spans, chunk_text, effective_limits
from prag.ingest.processor import (
    build_chunks,
    build_file_header,
    compute_hash,
    extract_text,
    read_text_safely,
)
from prag.models import Chunk


def test_chunk_short_text():
    chunks = chunk_text("Short text.", max_chars=500)
    assert chunks == ["Short text."]


def test_chunk_empty_text():
    assert chunk_text("", max_chars=500) == []
    assert chunk_text("   \n  ", max_chars=500) == []


def test_chunk_long_text_respects_max():
    text = "\n".join(f"line {i} " + "x" * 50 for i in range(200))
    chunks = chunk_text(text, max_chars=1000, overlap_chars=100)
    assert len(chunks) > 1
    assert all(len(c) <= 1000 for c in chunks)


def test_chunks_cover_text_without_gaps():
    text = "".join(f"paragraph {i}\n" + "word " * (i % 17) for i in range(400))
    spans = chunk_spans(text, 700, 120)
    assert spans[0][0] == 0
    assert spans[-1][1] == len(text)
    for (s1, e1), (s2, e2) in zip(spans, spans[1:]):
        assert s2 <= e1  # overlap or adjacency, never a gap
        assert s2 > s1   # always moves forward


def test_chunks_overlap():
    text = "a" * 3000
    spans = chunk_spans(text, 1000, 200)
    assert spans[0] == (0, 1000)
    assert spans[1][0] == 800


def test_overlap_capped_at_quarter():
    assert effective_limits(1000, 600) == (1000, 250)


def test_split_prefers_newline_past_midpoint():
    text = "a" * 700 + "\n" + "b" * 700
    spans = chunk_spans(text, 1000, 0)
    assert spans[0] == (0, 701)


def test_split_ignores_newline_before_midpoint():
    text = "a" * 100 + "\n" + "b" * 1500
    spans = chunk_spans(text, 1000, 0)
    assert spans[0] == (0, 1000)


def test_structured_formats_use_smaller_chunks():
    assert effective_limits(4000, 200, "json")[0] == 3000
    assert effective_limits(4000, 200, "xml")[0] == 3000
    assert effective_limits(1000, 200, "json")[0] == 1000
    assert effective_limits(1800, 200, ".JSON")[0] == 1500
    assert effective_limits(4000, 200, "md")[0] == 4000


def test_compute_hash(tmp_path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("hello")
    b.write_text("world")
    assert compute_hash(a) == compute_hash(a)
    assert compute_hash(a) != compute_hash(b)


def test_read_text_falls_back_on_bad_utf8():
    with tempfile.NamedTemporaryFile(suffix=".txt", delete=False) as f:
        f.write(b"caf\xe9 au lait")
    text = read_text_safely(Path(f.name))
    assert text.startswith("caf")
    assert "au lait" in text


def test_extract_html(tmp_path):
    page = tmp_path / "page.html"
    page.write_text("<html><head><script>var x = 1;</script></head><body><p>Visible words</p></body></html>")
    text = extract_text(page)
    assert "Visible words" in text
    assert "var x" not in text


def test_file_header():
    assert build_file_header("src/a.py", "a.py", "py") == "FILE: src/a.py\nNAME: a.py\nEXT: py\n---\n"


def test_build_chunks_adds_header_and_metadata():
    chunks = build_chunks("body text", "docs/readme.md", "proj", 1000, 100)
    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.text.startswith("FILE: docs/readme.md\nNAME: readme.md\nEXT: md\n---\n")
    assert chunk.text.endswith("body text")
    assert chunk.file_name == "readme.md"
    assert chunk.extension == "md"
    assert chunk.chunk_index == 0
    assert chunk.project_id == "proj"


def test_build_chunks_blank_text():
    assert build_chunks("  \n", "a.md", "proj", 1000, 100) == []


def test_chunk_id_is_project_scoped():
    a = build_chunks("same text", "a.md", "one", 1000, 100)[0]
    b = build_chunks("same text", "a.md", "two", 1000, 100)[0]
    assert len(a.chunk_id) == 32
    assert a.chunk_id != b.chunk_id
    assert a.chunk_id == build_chunks("other text", "a.md", "one", 1000, 100)[0].chunk_id


def test_extract_docx(tmp_path):
    from docx import Document

    doc = Document()
    doc.add_paragraph("First paragraph")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "key"
    table.rows[0].cells[1].text = "value"
    path = tmp_path / "report.docx"
    doc.save(str(path))

    text = extract_text(path)
    assert "First paragraph" in text
    assert "key | value" in text


def test_chunk_id_depends_on_root_and_source_type():
    base = build_chunks("same text", "README.md", "one", 1000, 100, root="/work/a")[0]
    other_root = build_chunks("same text", "README.md", "one", 1000, 100, root="/work/b")[0]
    single_file = build_chunks("same text", "README.md", "one", 1000, 100, source_type="files", root="/work/a")[0]
    assert len({base.chunk_id, other_root.chunk_id, single_file.chunk_id}) == 3
    assert base.to_metadata()["root"] == "/work/a"
    assert Chunk.from_metadata(base.text, single_file.to_metadata()).source_type == "files"
