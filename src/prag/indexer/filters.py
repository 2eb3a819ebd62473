"""Which files under an indexed folder get indexed."""

import logging
from fnmatch import fnmatchcase
from pathlib import Path

from ..config import IndexingConfig, ProjectType

logger = logging.getLogger(__name__)


def detect_project_types(root: Path, project_types) -> list[ProjectType]:
    """Project types whose marker files sit directly in root. Markers may use wildcards."""
    try:
        root_names = {p.name for p in root.iterdir()}
    except OSError as e:
        logger.warning("Cannot list %s: %s", root, e)
        return []

    detected = []
    for ptype in project_types:
        for marker in ptype.markers:
            if "*" in marker:
                found = any(fnmatchcase(name, marker) for name in root_names)
            else:
                found = marker in root_names
            if found:
                detected.append(ptype)
                break
    if detected:
        logger.debug("Detected project types in %s: %s", root, ", ".join(t.name for t in detected))
    return detected


def should_exclude(rel_path: str, file_name: str, patterns) -> bool:
    """Match a file against exclude patterns.

    "dir/" patterns match any path segment, patterns with "*" match the file name
    or the whole relative path, anything else matches the file name or a segment.
    """
    for pattern in patterns:
        if pattern.endswith("/"):
            d = pattern[:-1]
            if rel_path.startswith(f"{d}/") or f"/{d}/" in rel_path:
                return True
        elif "*" in pattern:
            if fnmatchcase(file_name, pattern) or fnmatchcase(rel_path, pattern):
                return True
        elif file_name == pattern or f"/{pattern}/" in rel_path or rel_path.endswith(f"/{pattern}"):
            return True
    return False


def should_exclude_directory(rel_dir: str, patterns) -> bool:
    """True when a directory (relative to the root) is covered by a "dir/" pattern."""
    rel_dir = rel_dir.replace("\\", "/").strip("/")
    if rel_dir in ("", "."):
        return False
    for pattern in patterns:
        if not pattern.endswith("/"):
            continue
        d = pattern[:-1]
        if rel_dir == d or rel_dir.startswith(f"{d}/") or f"/{d}/" in rel_dir or rel_dir.endswith(f"/{d}"):
            return True
    return False


def exclude_patterns(config: IndexingConfig, detected: list[ProjectType]) -> set[str]:
    patterns = set(config.common_excludes)
    for ptype in detected:
        patterns |= ptype.exclude_paths
    return patterns


def is_indexable_file(path: Path, root: Path, config: IndexingConfig, detected: list[ProjectType]) -> bool:
    """Apply the skip rules in order and finally require a supported extension."""
    file_name = path.name
    ext = path.suffix.lower().lstrip(".")
    rel_path = path.relative_to(root).as_posix()

    if file_name.startswith("."):
        logger.debug("Skipping hidden file: %s", rel_path)
        return False
    if ext in config.binary_extensions:
        logger.debug("Skipping binary file: %s", rel_path)
        return False
    if file_name in config.exclude_file_names:
        logger.debug("Skipping excluded file: %s", rel_path)
        return False
    if should_exclude(rel_path, file_name, config.common_excludes):
        logger.debug("Skipping file matching common excludes: %s", rel_path)
        return False
    for ptype in detected:
        if should_exclude(rel_path, file_name, ptype.exclude_paths):
            logger.debug("Skipping file matching %s excludes: %s", ptype.name, rel_path)
            return False
    if ext not in config.supported_extensions:
        logger.debug("Skipping unsupported extension: %s", rel_path)
        return False
    return True


def too_large(path: Path, config: IndexingConfig) -> bool:
    try:
        size = path.stat().st_size
    except OSError:
        return False
    if size > config.max_file_bytes:
        logger.debug("Skipping %s: %d bytes exceeds %d", path, size, config.max_file_bytes)
        return True
    return False


def iter_indexable_files(root: Path, config: IndexingConfig):
    """Walk root, pruning excluded directories, yielding indexable files in sorted order."""
    detected = detect_project_types(root, config.project_types)
    patterns = exclude_patterns(config, detected)

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(current.iterdir())
        except OSError as e:
            logger.warning("Cannot list %s: %s", current, e)
            continue

        subdirs = []
        for entry in entries:
            if entry.is_symlink():
                continue
            if entry.is_dir():
                if not should_exclude_directory(entry.relative_to(root).as_posix(), patterns):
                    subdirs.append(entry)
            elif entry.is_file() and is_indexable_file(entry, root, config, detected):
                yield entry
        stack.extend(reversed(subdirs))
