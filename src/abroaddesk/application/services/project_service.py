from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path

from abroaddesk.core.config import BACKEND_LOCAL, AppConfig
from abroaddesk.core.errors import ProjectNotInitializedError
from abroaddesk.core.files import ensure_directory
from abroaddesk.infrastructure.db.sqlite import initialize_schema


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    db_path: Path
    signing_key_created: bool


class ProjectService:
    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def init_project(self) -> InitResult:
        paths_created: list[Path] = []

        for path in (self.config.data_dir, self.config.media_dir):
            if not path.exists():
                paths_created.append(path)
            ensure_directory(path)

        if self.config.backend == BACKEND_LOCAL:
            initialize_schema(
                self.config.db_path,
                connect_timeout_seconds=self.config.sqlite_connect_timeout_seconds,
                busy_timeout_ms=self.config.sqlite_busy_timeout_ms,
            )

        key_created = False
        if not self.config.media_signing_key and not self.config.signing_key_path.exists():
            self.config.signing_key_path.write_text(secrets.token_hex(32), encoding="utf-8")
            self.config.signing_key_path.chmod(0o600)
            key_created = True

        return InitResult(paths_created=paths_created, db_path=self.config.db_path, signing_key_created=key_created)

    def is_initialized(self) -> bool:
        if self.config.backend == BACKEND_LOCAL:
            return self.config.db_path.exists()
        return self.config.data_dir.exists()

    def signing_key(self) -> str:
        if self.config.media_signing_key:
            return self.config.media_signing_key
        key_path = self.config.signing_key_path
        if not key_path.exists():
            raise ProjectNotInitializedError(f"Media signing key missing: {key_path}. Run `abroad init`.")
        return key_path.read_text(encoding="utf-8").strip()
