from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DATA_DIRNAME = ".abroad"
DEFAULT_PREVIEW_TTL_SECONDS = 3600
DEFAULT_PROJECTION_WORKERS = 8
DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000

BACKEND_LOCAL = "local"
BACKEND_SUPABASE = "supabase"

MEDIA_BUCKETS = ("countries", "universities", "team", "stories", "news-events", "resources", "gallery")


@dataclass(frozen=True)
class AppConfig:
    project_root: Path
    data_dir: Path
    db_path: Path
    media_dir: Path
    backend: str = BACKEND_LOCAL
    public_base_url: str = ""
    media_signing_key: str | None = None
    preview_ttl_seconds: int = DEFAULT_PREVIEW_TTL_SECONDS
    projection_workers: int = DEFAULT_PROJECTION_WORKERS
    sqlite_connect_timeout_seconds: float = DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS
    sqlite_busy_timeout_ms: int = DEFAULT_SQLITE_BUSY_TIMEOUT_MS
    supabase_url: str | None = None
    supabase_key: str | None = None
    buckets: dict[str, str] = field(default_factory=dict)

    @property
    def signing_key_path(self) -> Path:
        return self.data_dir / "media.key"

    def bucket_for(self, entity: str) -> str:
        return self.buckets.get(entity, entity)


def _read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_first(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


def _bucket_env_name(entity: str) -> str:
    return "ABROAD_BUCKET_" + entity.upper().replace("-", "_")


def load_config(project_root: Path | None = None) -> AppConfig:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("ABROAD_HOME")
    if home_raw:
        data_dir = Path(home_raw).expanduser().resolve()
    else:
        data_dir = root / DEFAULT_DATA_DIRNAME

    backend = (os.getenv("ABROAD_BACKEND") or BACKEND_LOCAL).strip().lower()
    buckets = {entity: os.getenv(_bucket_env_name(entity)) or entity for entity in MEDIA_BUCKETS}

    return AppConfig(
        project_root=root,
        data_dir=data_dir,
        db_path=data_dir / "abroad.db",
        media_dir=data_dir / "media",
        backend=backend,
        public_base_url=(os.getenv("ABROAD_PUBLIC_BASE_URL") or "").strip().rstrip("/"),
        media_signing_key=_env_first("ABROAD_MEDIA_SIGNING_KEY"),
        preview_ttl_seconds=_read_int_env("ABROAD_PREVIEW_TTL_SECONDS", DEFAULT_PREVIEW_TTL_SECONDS),
        projection_workers=_read_int_env("ABROAD_PROJECTION_WORKERS", DEFAULT_PROJECTION_WORKERS),
        sqlite_connect_timeout_seconds=_read_float_env(
            "ABROAD_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS
        ),
        sqlite_busy_timeout_ms=_read_int_env("ABROAD_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS),
        supabase_url=_env_first("ABROAD_SUPABASE_URL", "SUPABASE_URL"),
        supabase_key=_env_first("ABROAD_SUPABASE_KEY", "SUPABASE_SERVICE_KEY"),
        buckets=buckets,
    )
