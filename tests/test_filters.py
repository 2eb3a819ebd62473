"""Tests for file selection rules."""

from prag.config import IndexingConfig, ProjectType
from prag.indexer.filters import (
    detect_project_types,
    is_indexable_file,
    iter_indexable_files,
    should_exclude,
    should_exclude_directory,
)

NODE = ProjectType(name="Node.js", markers=frozenset({"package.json"}), exclude_paths=frozenset({"node_modules/", "dist/"}))
DOTNET = ProjectType(name=".NET", markers=frozenset({"*.csproj"}), exclude_paths=frozenset({"bin/", "obj/"}))


def _config(**kw):
    kw.setdefault("project_types", (NODE, DOTNET))
    return IndexingConfig(**kw)


def test_detect_project_types(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    (tmp_path / "App.csproj").write_text("<Project/>")
    names = {t.name for t in detect_project_types(tmp_path, (NODE, DOTNET))}
    assert names == {"Node.js", ".NET"}


def test_detect_nothing(tmp_path):
    assert detect_project_types(tmp_path, (NODE, DOTNET)) == []


def test_should_exclude_patterns():
    assert should_exclude(".git/config", "config", {".git/"})
    assert should_exclude("a/.git/HEAD", "HEAD", {".git/"})
    assert should_exclude("logs/app.log", "app.log", {"*.log"})
    assert should_exclude("a/b/.DS_Store", ".DS_Store", {".DS_Store"})
    assert not should_exclude("src/gitstuff.py", "gitstuff.py", {".git/", "*.log"})


def test_should_exclude_directory():
    assert should_exclude_directory("node_modules", {"node_modules/"})
    assert should_exclude_directory("pkg/node_modules", {"node_modules/"})
    assert not should_exclude_directory("src", {"node_modules/"})
    assert not should_exclude_directory("", {"node_modules/"})


def test_is_indexable_file_rules(tmp_path):
    cfg = _config()
    for name in ["main.py", ".hidden.py", "logo.png", "package-lock.json", "notes.xyz", "debug.log"]:
        (tmp_path / name).write_text("x")
    assert is_indexable_file(tmp_path / "main.py", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / ".hidden.py", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / "logo.png", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / "package-lock.json", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / "notes.xyz", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / "debug.log", tmp_path, cfg, [])


def test_project_type_excludes_apply_only_when_detected(tmp_path):
    cfg = _config()
    (tmp_path / "dist").mkdir()
    (tmp_path / "dist" / "bundle.js").write_text("x")
    assert is_indexable_file(tmp_path / "dist" / "bundle.js", tmp_path, cfg, [])
    assert not is_indexable_file(tmp_path / "dist" / "bundle.js", tmp_path, cfg, [NODE])


def test_iter_indexable_files_prunes_directories(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "index.js").write_text("x")
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "index.js").write_text("x")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config.txt").write_text("x")

    found = {p.relative_to(tmp_path).as_posix() for p in iter_indexable_files(tmp_path, _config())}
    assert found == {"package.json", "src/index.js"}
