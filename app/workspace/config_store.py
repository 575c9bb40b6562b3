"""Authoritative backend configuration: the relational record plus the on-disk document."""
from __future__ import annotations
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from app.core.errors import NotFoundError, StorageError
from app.core.principal import Principal
from app.db.models import UserBackend, utcnow
from app.generators.backend_gen.generator import CONFIG_FILENAME
from app.generators.backend_gen.render import render_base_model
from app.generators.backend_gen.render_module import render_model
from app.generators.backend_gen.types import GeneratedFile
from app.generators.backend_gen.utils import module_names
from app.generators.backend_gen.writer import write_json_atomic
from app.schemas.config import CONSOLIDATED_SCHEMA_VERSION, BackendConfig, ModuleDefinition
from app.workspace.manager import BackendDirectoryManager

log = logging.getLogger(__name__)

LEGACY_MODULES_FILENAME = "modules.json"
LEGACY_GENERATED_FILENAME = "generatedModules.json"
BACKUP_DIRNAME = "_backup"
# Entries that survive a legacy migration in place
MIGRATION_KEEP = {"models", BACKUP_DIRNAME, CONFIG_FILENAME}


@dataclass
class MigrationOutcome:
    status: str
    reason: Optional[str] = None


class ConfigurationStore:
    def __init__(self, db: Session, directories: BackendDirectoryManager, enforce_unique: bool = False):
        self.db = db
        self.directories = directories
        self.enforce_unique = enforce_unique

    # Relational side

    def get_backend(self, backend_id: str, principal: Principal) -> UserBackend:
        backend = self.db.get(UserBackend, backend_id)
        if backend is None or not principal.can_access(backend.user_id):
            raise NotFoundError("Backend not found or you do not have access")
        return backend

    def list_backends(self, principal: Principal, limit: int = 10, offset: int = 0) -> Tuple[List[UserBackend], int]:
        query = select(UserBackend)
        count = select(func.count()).select_from(UserBackend)
        if not principal.is_admin:
            query = query.where(UserBackend.user_id == principal.id)
            count = count.where(UserBackend.user_id == principal.id)
        query = query.order_by(UserBackend.created_at.desc()).offset(offset).limit(limit)
        return list(self.db.scalars(query)), self.db.scalar(count) or 0

    def config_from_record(self, backend: UserBackend) -> BackendConfig:
        return BackendConfig.model_validate({
            "schemaVersion": backend.schema_version,
            "name": backend.name,
            "description": backend.description,
            "dbType": backend.db_type,
            "dbConfig": backend.db_config,
            "userId": backend.user_id,
            "modules": backend.modules,
            "generatedModules": backend.generated_modules,
            "createdAt": backend.created_at,
            "updatedAt": backend.updated_at,
            "settings": backend.settings,
        })

    def mirror_to_record(self, backend: UserBackend, config: BackendConfig) -> None:
        """Copy module state of ``config`` onto the relational record (not committed)."""
        backend.modules = config.modules_document()
        backend.generated_modules = config.generated_document()
        backend.updated_at = utcnow()

    # Document side

    def config_path(self, backend_dir: Path) -> Path:
        return backend_dir / CONFIG_FILENAME

    def has_document(self, backend_dir: Path) -> bool:
        return self.config_path(backend_dir).is_file()

    def read_document(self, backend_dir: Path) -> Optional[BackendConfig]:
        """Parse the consolidated document; None when absent or unreadable."""
        path = self.config_path(backend_dir)
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return BackendConfig.model_validate(json.load(f))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            log.error("Corrupt configuration document %s: %s", path, e)
            return None
        except OSError as e:
            raise StorageError("Failed to read configuration document", detail=str(e)) from e

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.is_file():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            log.error("Invalid JSON in %s, using empty default: %s", path, e)
            return default
        except OSError as e:
            raise StorageError(f"Failed to read {path.name}", detail=str(e)) from e
        return data if isinstance(data, type(default)) else default

    def read_legacy(self, backend_dir: Path) -> Tuple[Dict[str, Any], List[str]]:
        modules = self._read_json(backend_dir / LEGACY_MODULES_FILENAME, {})
        generated = self._read_json(backend_dir / LEGACY_GENERATED_FILENAME, {}).get("generated", [])
        if not isinstance(generated, list):
            generated = []
        return modules, generated

    def load(self, backend: UserBackend) -> BackendConfig:
        """Current configuration of ``backend``: the document when consolidated, else the record."""
        if backend.schema_version >= CONSOLIDATED_SCHEMA_VERSION:
            config = self.read_document(self.directories.dir_for(backend))
            if config is not None:
                return config
        return self.config_from_record(backend)

    def save(self, backend_dir: Path, config: BackendConfig) -> BackendConfig:
        config.updated_at = utcnow()
        try:
            write_json_atomic(self.config_path(backend_dir), config.to_document())
        except OSError as e:
            log.error("Failed to write configuration document in %s: %s", backend_dir, e)
            raise StorageError("Failed to save configuration", detail=str(e)) from e
        return config

    def save_modules(self, backend: UserBackend, backend_dir: Path, config: BackendConfig) -> None:
        """Persist module state in whichever shape the backend is stored in."""
        if backend.schema_version >= CONSOLIDATED_SCHEMA_VERSION:
            self.save(backend_dir, config)
            return
        try:
            write_json_atomic(backend_dir / LEGACY_MODULES_FILENAME, config.modules_document())
            write_json_atomic(backend_dir / LEGACY_GENERATED_FILENAME, config.generated_document())
        except OSError as e:
            log.error("Failed to write legacy module documents in %s: %s", backend_dir, e)
            raise StorageError("Failed to save module configuration", detail=str(e)) from e

    # Migration

    def _backup(self, backend_dir: Path) -> List[Path]:
        """Copy every non-model entry into ``_backup/``, merging with an earlier partial run."""
        backup_dir = backend_dir / BACKUP_DIRNAME
        backup_dir.mkdir(exist_ok=True)
        moved = []
        for entry in sorted(backend_dir.iterdir()):
            if entry.name in MIGRATION_KEEP:
                continue
            target = backup_dir / entry.name
            if entry.is_dir():
                shutil.copytree(entry, target, dirs_exist_ok=True)
            else:
                shutil.copy2(entry, target)
            moved.append(entry)
        return moved

    def _remove(self, entries: List[Path]) -> None:
        for entry in entries:
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def _model_files(self, config: BackendConfig) -> List[GeneratedFile]:
        files = [GeneratedFile(path="models/base_model.py", content=render_base_model())]
        for name in config.generated:
            files.append(GeneratedFile(
                path=module_names(name).model_file,
                content=render_model(name, config.modules[name], enforce_unique=self.enforce_unique),
            ))
        return files

    def _valid_modules(self, backend: UserBackend, modules: Any) -> Dict[str, ModuleDefinition]:
        """Legacy definitions that validate; the rest are logged and left in the backup."""
        if not isinstance(modules, dict):
            log.error("Legacy modules document is not an object, ignoring it",
                      extra={"backend_id": backend.id, "op": "migrate"})
            return {}
        valid = {}
        for name, definition in modules.items():
            try:
                valid[name] = ModuleDefinition.model_validate(definition)
            except PydanticValidationError as e:
                log.error("Dropping unusable legacy module %s: %s", name, e,
                          extra={"backend_id": backend.id, "op": "migrate"})
        return valid

    def _consolidated_config(self, backend: UserBackend, modules: Any) -> BackendConfig:
        config = self.config_from_record(backend)
        config.schema_version = CONSOLIDATED_SCHEMA_VERSION
        config.modules = self._valid_modules(backend, modules)
        return config

    def migrate_legacy_to_consolidated(self, backend: UserBackend) -> MigrationOutcome:
        """Convert a legacy tree into the consolidated document plus regenerated model files.

        Re-running is a no-op once the document exists. The legacy documents are
        only removed after the consolidated document has been written.
        """
        extra = {"backend_id": backend.id, "op": "migrate"}
        backend_dir = self.directories.dir_for(backend)
        if not self.directories.exists(backend_dir):
            return MigrationOutcome("skipped", "Directory not found")
        if self.has_document(backend_dir):
            if backend.schema_version != CONSOLIDATED_SCHEMA_VERSION:
                backend.schema_version = CONSOLIDATED_SCHEMA_VERSION
                self.db.commit()
            return MigrationOutcome("skipped", "Already consolidated")

        modules, generated = self.read_legacy(backend_dir)
        has_legacy = any((backend_dir / n).is_file() for n in (LEGACY_MODULES_FILENAME, LEGACY_GENERATED_FILENAME))
        if not has_legacy:
            log.info("No legacy documents, migrating from the relational record", extra=extra)
            modules, generated = backend.modules or {}, backend.generated_names

        config = self._consolidated_config(backend, modules)
        orphans = [n for n in generated if n not in config.modules]
        if orphans:
            log.warning("Dropping generated modules without definitions: %s", orphans, extra=extra)
        config.generated_modules.generated = [n for n in generated if n in config.modules]

        try:
            stale = self._backup(backend_dir)
            self.save(backend_dir, config)
            self._remove(stale)
            self.directories.write_files(backend_dir, self._model_files(config))
        except OSError as e:
            log.error("Migration failed: %s", e, exc_info=True, extra=extra)
            raise StorageError("Failed to migrate backend", detail=str(e)) from e
        self.directories.prune_unlisted(backend_dir, config.generated)

        self.mirror_to_record(backend, config)
        backend.schema_version = CONSOLIDATED_SCHEMA_VERSION
        self.db.commit()
        log.info("Migrated %d module(s) to consolidated configuration", len(config.generated), extra=extra)
        return MigrationOutcome("migrated")

