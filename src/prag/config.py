"""Configuration management for prag."""

import hashlib
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


DEFAULT_SUPPORTED_EXTENSIONS = [
    "java", "kt", "kts", "py", "js", "ts", "jsx", "tsx", "go", "rs", "c", "cpp", "h", "hpp",
    "cs", "rb", "php", "swift", "scala", "groovy", "sh", "bash", "yaml", "yml", "json", "xml",
    "md", "txt", "gradle", "properties", "toml", "pdf", "docx", "html", "htm",
]

DEFAULT_BINARY_EXTENSIONS = [
    # Images
    "png", "jpg", "jpeg", "gif", "svg", "ico", "webp", "bmp", "tiff", "tif",
    # Video
    "mp4", "avi", "mov", "mkv", "webm", "flv", "wmv", "m4v",
    # Audio
    "mp3", "wav", "ogg", "flac", "aac", "m4a", "wma",
    # Archives
    "zip", "tar", "gz", "bz2", "7z", "rar", "xz", "tgz",
    # Executables and objects
    "exe", "dll", "so", "dylib", "bin", "obj", "o", "a", "lib",
    # Databases
    "db", "sqlite", "sqlite3", "mdb", "accdb",
    # Office formats we cannot extract
    "doc", "xls", "xlsx", "ppt", "pptx",
    # Fonts
    "ttf", "otf", "woff", "woff2", "eot",
    "class", "jar", "war", "ear", "pyc", "pyo",
]

DEFAULT_EXCLUDE_FILE_NAMES = [
    ".DS_Store", "Thumbs.db", "desktop.ini",
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock", "Gemfile.lock",
    ".project", ".classpath", ".factorypath",
]

DEFAULT_COMMON_EXCLUDES = [
    ".git/", ".svn/", ".hg/", ".idea/", ".vscode/", ".DS_Store",
    "*.log", "*.tmp", "*.temp", "*.swp", "*.bak", ".history/",
]

DEFAULT_PROJECT_TYPES = [
    {
        "name": "Gradle",
        "markers": ["build.gradle", "build.gradle.kts", "settings.gradle", "settings.gradle.kts", "gradlew"],
        "exclude_paths": ["build/", ".gradle/", "out/", "bin/", ".kotlintest/", ".kotlin/"],
    },
    {
        "name": "Maven",
        "markers": ["pom.xml", "mvnw"],
        "exclude_paths": ["target/", ".mvn/", "out/", "bin/"],
    },
    {
        "name": "Node.js",
        "markers": ["package.json", "package-lock.json", "yarn.lock", "pnpm-lock.yaml"],
        "exclude_paths": [
            "node_modules/", "dist/", "build/", ".next/", ".nuxt/", "out/", "coverage/",
            ".cache/", ".parcel-cache/", ".turbo/", ".vite/",
        ],
    },
    {
        "name": "Python",
        "markers": ["requirements.txt", "setup.py", "pyproject.toml", "Pipfile", "poetry.lock"],
        "exclude_paths": [
            "__pycache__/", "*.pyc", "*.pyo", "*.pyd", ".pytest_cache/", ".mypy_cache/", ".tox/",
            "venv/", "env/", ".venv/", ".env/", "dist/", "build/", "*.egg-info/", ".eggs/",
        ],
    },
    {
        "name": "Go",
        "markers": ["go.mod", "go.sum"],
        "exclude_paths": ["vendor/", "bin/", "pkg/"],
    },
    {
        "name": "Rust",
        "markers": ["Cargo.toml", "Cargo.lock"],
        "exclude_paths": ["target/", "Cargo.lock"],
    },
    {
        "name": "Ruby",
        "markers": ["Gemfile", "Gemfile.lock", "Rakefile"],
        "exclude_paths": ["vendor/", ".bundle/", "tmp/", "log/"],
    },
    {
        "name": "PHP/Composer",
        "markers": ["composer.json", "composer.lock"],
        "exclude_paths": ["vendor/", "var/cache/", "var/log/"],
    },
    {
        "name": ".NET",
        "markers": ["*.csproj", "*.sln", "*.fsproj", "*.vbproj"],
        "exclude_paths": ["bin/", "obj/", "packages/", ".vs/", "Debug/", "Release/"],
    },
]

DEFAULT_CONFIG = {
    "data_path": "~/.prag",
    "embedding_model": "intfloat/e5-large-v2",
    "claude_model": "claude-3-5-haiku-20241022",
    "chunking": {"max_chars_per_chunk": 4000, "chunk_overlap": 200},
    "indexing": {
        "max_file_bytes": 5_000_000,
        "progress_interval": 10,
        "supported_extensions": DEFAULT_SUPPORTED_EXTENSIONS,
        "binary_extensions": DEFAULT_BINARY_EXTENSIONS,
        "exclude_file_names": DEFAULT_EXCLUDE_FILE_NAMES,
        "common_excludes": DEFAULT_COMMON_EXCLUDES,
        "project_types": DEFAULT_PROJECT_TYPES,
    },
    "retrieval": {
        "vector_search_max_results": 20,
        "vector_search_min_score": 0.3,
        "keyword_search_max_results": 10,
        "hybrid_max_results": 15,
        "rank_fusion_constant": 60,
    },
    "intent": {
        "enabled": True,
        "timeout_seconds": 5.0,
        "history_turns": 3,
        "max_history_chars": 150,
        "max_message_chars": 1000,
    },
    "watcher": {"poll_timeout_seconds": 1.0, "queue_size": 1000},
}


class ConfigError(ValueError):
    """Raised when a configuration value is missing or out of range."""


@dataclass(frozen=True)
class ChunkingConfig:
    max_chars_per_chunk: int = 4000
    chunk_overlap: int = 200

    def __post_init__(self) -> None:
        _require_positive("chunking.max_chars_per_chunk", self.max_chars_per_chunk)
        if self.chunk_overlap < 0:
            raise ConfigError("chunking.chunk_overlap must be >= 0")


@dataclass(frozen=True)
class ProjectType:
    """A project layout recognised by marker files at the root of an indexed folder."""
    name: str
    markers: frozenset[str]
    exclude_paths: frozenset[str]


@dataclass(frozen=True)
class IndexingConfig:
    max_file_bytes: int = 5_000_000
    progress_interval: int = 10
    supported_extensions: frozenset[str] = frozenset(DEFAULT_SUPPORTED_EXTENSIONS)
    binary_extensions: frozenset[str] = frozenset(DEFAULT_BINARY_EXTENSIONS)
    exclude_file_names: frozenset[str] = frozenset(DEFAULT_EXCLUDE_FILE_NAMES)
    common_excludes: frozenset[str] = frozenset(DEFAULT_COMMON_EXCLUDES)
    project_types: tuple[ProjectType, ...] = ()

    def __post_init__(self) -> None:
        _require_positive("indexing.max_file_bytes", self.max_file_bytes)
        _require_positive("indexing.progress_interval", self.progress_interval)
        # Extensions are compared without the leading dot
        object.__setattr__(self, "supported_extensions", _normalize_extensions(self.supported_extensions))
        object.__setattr__(self, "binary_extensions", _normalize_extensions(self.binary_extensions))


@dataclass(frozen=True)
class RetrievalConfig:
    vector_search_max_results: int = 20
    vector_search_min_score: float = 0.3
    keyword_search_max_results: int = 10
    hybrid_max_results: int = 15
    rank_fusion_constant: int = 60

    def __post_init__(self) -> None:
        _require_positive("retrieval.vector_search_max_results", self.vector_search_max_results)
        _require_positive("retrieval.keyword_search_max_results", self.keyword_search_max_results)
        _require_positive("retrieval.hybrid_max_results", self.hybrid_max_results)
        _require_positive("retrieval.rank_fusion_constant", self.rank_fusion_constant)
        if not 0.0 <= self.vector_search_min_score <= 1.0:
            raise ConfigError("retrieval.vector_search_min_score must be between 0 and 1")


@dataclass(frozen=True)
class IntentConfig:
    enabled: bool = True
    timeout_seconds: float = 5.0
    history_turns: int = 3
    max_history_chars: int = 150
    max_message_chars: int = 1000

    def __post_init__(self) -> None:
        _require_positive("intent.timeout_seconds", self.timeout_seconds)
        _require_positive("intent.max_history_chars", self.max_history_chars)
        _require_positive("intent.max_message_chars", self.max_message_chars)
        if self.history_turns < 0:
            raise ConfigError("intent.history_turns must be >= 0")


@dataclass(frozen=True)
class WatcherConfig:
    poll_timeout_seconds: float = 1.0
    queue_size: int = 1000

    def __post_init__(self) -> None:
        _require_positive("watcher.poll_timeout_seconds", self.poll_timeout_seconds)
        _require_positive("watcher.queue_size", self.queue_size)


@dataclass(frozen=True)
class Settings:
    """Validated, typed view of the merged configuration."""
    data_path: Path
    embedding_model: str = "intfloat/e5-large-v2"
    claude_model: str = "claude-3-5-haiku-20241022"
    claude_api_key: str | None = None
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    indexing: IndexingConfig = field(default_factory=lambda: IndexingConfig(project_types=_project_types(DEFAULT_PROJECT_TYPES)))
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    intent: IntentConfig = field(default_factory=IntentConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    @property
    def state_db_path(self) -> Path:
        return self.data_path / "state.db"

    def project_index_dir(self, project_id: str) -> Path:
        return self.data_path / "projects" / project_dir_name(project_id) / "index"

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "Settings":
        """Build settings from a merged config dict, validating every section."""
        if not cfg.get("data_path"):
            raise ConfigError("data_path is required")

        indexing = dict(cfg.get("indexing") or {})
        project_types = _project_types(indexing.pop("project_types", DEFAULT_PROJECT_TYPES))
        for key in ("supported_extensions", "binary_extensions", "exclude_file_names", "common_excludes"):
            if key in indexing:
                indexing[key] = frozenset(indexing[key] or [])

        return cls(
            data_path=Path(cfg["data_path"]).expanduser(),
            embedding_model=cfg.get("embedding_model", DEFAULT_CONFIG["embedding_model"]),
            claude_model=cfg.get("claude_model", DEFAULT_CONFIG["claude_model"]),
            claude_api_key=cfg.get("claude_api_key"),
            chunking=_section(ChunkingConfig, "chunking", cfg.get("chunking")),
            indexing=_section(IndexingConfig, "indexing", indexing, project_types=project_types),
            retrieval=_section(RetrievalConfig, "retrieval", cfg.get("retrieval")),
            intent=_section(IntentConfig, "intent", cfg.get("intent")),
            watcher=_section(WatcherConfig, "watcher", cfg.get("watcher")),
        )


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".prag" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = _copy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        if not isinstance(file_cfg, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if api_key := os.environ.get("ANTHROPIC_API_KEY"):
        cfg["claude_api_key"] = api_key
    if data_path := os.environ.get("PRAG_DATA_PATH"):
        cfg["data_path"] = data_path

    cfg["data_path"] = str(Path(cfg["data_path"]).expanduser().resolve())
    return cfg


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load and validate configuration into typed settings."""
    return Settings.from_dict(load_config(config_path))


def slug(s: str) -> str:
    """Filesystem-safe form of a project identifier."""
    return re.sub(r"[^a-z0-9]+", "_", s.lower()).strip("_") or "default"


def project_dir_name(project_id: str) -> str:
    """Directory name for a project: its slug plus a short hash of the raw id."""
    digest = hashlib.sha256(project_id.encode("utf-8")).hexdigest()[:8]
    return f"{slug(project_id)}_{digest}"


def _section(cls, name: str, values: dict[str, Any] | None, **extra):
    values = dict(values or {})
    known = set(cls.__dataclass_fields__)
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"Unknown {name} option(s): {', '.join(sorted(unknown))}")
    try:
        return cls(**values, **extra)
    except TypeError as e:
        raise ConfigError(f"Invalid {name} section: {e}") from e


def _project_types(raw: list[dict[str, Any]]) -> tuple[ProjectType, ...]:
    types = []
    for entry in raw or []:
        if not entry.get("name"):
            raise ConfigError("indexing.project_types entries need a name")
        types.append(ProjectType(
            name=entry["name"],
            markers=frozenset(entry.get("markers", [])),
            exclude_paths=frozenset(entry.get("exclude_paths", [])),
        ))
    return tuple(types)


def _normalize_extensions(exts) -> frozenset[str]:
    return frozenset(e.lower().lstrip(".") for e in exts)


def _require_positive(key: str, value) -> None:
    if value is None or value <= 0:
        raise ConfigError(f"{key} must be > 0")


def _copy(cfg: dict) -> dict:
    return {k: _copy(v) if isinstance(v, dict) else v for k, v in cfg.items()}


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
