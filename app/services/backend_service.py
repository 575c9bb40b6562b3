"""Backend and module operations: validation, ownership, locking, rendering and persistence."""
from __future__ import annotations
import logging
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.core import locks
from app.core.config import Settings, settings as default_settings
from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError, PlatformError, StorageError
from app.core.principal import Principal
from app.core.sync import SyncEngine, repair_generated
from app.db.models import UserBackend, utcnow
from app.generators.backend_gen.exporter import ExportArchive, export_backend
from app.generators.backend_gen.generator import (
    CONFIG_FILENAME,
    module_files,
    render_backend_files,
    render_project_files,
    run_generation_subprocess,
)
from app.generators.backend_gen.render import module_pairs, render_main_py, render_readme
from app.generators.backend_gen.render_module import render_module
from app.generators.backend_gen.types import GeneratedFile
from app.generators.backend_gen.utils import module_names
from app.generators.backend_gen.writer import write_json_atomic
from app.schemas.backends import (
    BackendCreateRequest,
    BackendUpdateRequest,
    MigrationResultItem,
    MigrationSummary,
    ModuleCreateRequest,
    ModuleUpdateRequest,
    parse_request,
)
from app.schemas.config import CONSOLIDATED_SCHEMA_VERSION, BackendConfig, DbConfig, FieldDefinition, ModuleDefinition
from app.workspace.config_store import ConfigurationStore
from app.workspace.manager import BackendDirectoryManager

log = logging.getLogger(__name__)


def definition_from_request(req: ModuleUpdateRequest, user_id: str) -> ModuleDefinition:
    return ModuleDefinition(
        fields={f.name: FieldDefinition(type=f.type, unique=f.unique, optional=f.optional) for f in req.fields},
        apis=req.apis,
        user_id=user_id,
    )


class BackendService:
    """Entry point for every backend-scoped operation.

    Mutations validate input and ownership first, then run under the backend's
    lock: reload the record, sync it from the directory, write derived
    artifacts, write the configuration document, commit the record.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        directories: Optional[BackendDirectoryManager] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.directories = directories or BackendDirectoryManager(self.settings.backends_root)
        self.store = ConfigurationStore(db, self.directories, enforce_unique=self.settings.enforce_unique_fields)
        self.sync_engine = SyncEngine(self.store)

    # Backends

    def list_backends(self, principal: Principal, page: int = 1, limit: int = 10) -> Tuple[List[UserBackend], int]:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        backends, total = self.store.list_backends(principal, limit=limit, offset=(page - 1) * limit)
        for backend in backends:
            self.sync_engine.sync(backend)
        return backends, total

    def get_backend(self, backend_id: str, principal: Principal) -> UserBackend:
        backend = self.store.get_backend(backend_id, principal)
        self.sync_engine.sync(backend)
        return backend

    def create_backend(self, principal: Principal, payload: Any) -> UserBackend:
        req = parse_request(BackendCreateRequest, payload)
        backend = UserBackend(
            user_id=principal.id,
            owner_name=principal.username,
            name=req.name,
            description=req.description,
            db_type=req.db_type,
            db_config=req.db_config.model_dump(exclude_none=True) if req.db_config else {},
            modules={},
            generated_modules={"generated": []},
            settings=req.settings or {},
            schema_version=CONSOLIDATED_SCHEMA_VERSION,
        )
        backend_dir = self.directories.dir_for(backend)
        if self.directories.exists(backend_dir):
            raise ConflictError(f"Backend {req.name} already exists")

        config = self.store.config_from_record(backend)
        config.created_at = utcnow()
        self.directories.create(backend_dir)
        self.directories.write_files(backend_dir, render_project_files(config))
        self.store.save(backend_dir, config)

        self.db.add(backend)
        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            log.error("Failed to record backend %s, removing %s: %s", req.name, backend_dir, e,
                      extra={"op": "create_backend"})
            self.directories.delete(backend_dir)
            raise
        self.db.refresh(backend)
        log.info("Backend %s created at %s", backend.name, backend_dir,
                 extra={"backend_id": backend.id, "op": "create_backend"})
        return backend

    def update_backend(self, backend_id: str, principal: Principal, payload: Any) -> UserBackend:
        backend = self.store.get_backend(backend_id, principal)
        req = parse_request(BackendUpdateRequest, payload)
        extra = {"backend_id": backend.id, "op": "update_backend"}

        with locks.backend_lock(backend.id):
            self.db.refresh(backend)
            self.sync_engine.sync(backend)
            config = self.store.load(backend)
            old_dir = self.directories.dir_for(backend)
            new_dir = old_dir
            if req.name is not None and req.name != backend.name:
                new_dir = self.directories.backend_dir(backend.owner_name, backend.user_id, req.name)
                if new_dir != old_dir and self.directories.exists(new_dir):
                    raise ConflictError(f"Backend {req.name} already exists")

            if req.name is not None:
                config.name = req.name
            if "description" in req.model_fields_set:
                config.description = req.description
            if req.db_type is not None:
                config.db_type = req.db_type
            if req.db_config is not None:
                config.db_config = DbConfig.model_validate(req.db_config.model_dump(exclude_none=True))
            if req.settings is not None:
                config.settings = req.settings

            if self.directories.rename(old_dir, new_dir):
                log.info("Moved %s to %s", old_dir, new_dir, extra=extra)
            if self.directories.exists(new_dir):
                # Fresh secret and manifests for the new connection settings
                self.directories.write_files(new_dir, render_project_files(config))
                if backend.schema_version >= CONSOLIDATED_SCHEMA_VERSION:
                    self.store.save(new_dir, config)

            backend.name = config.name
            backend.description = config.description
            backend.db_type = config.db_type
            backend.db_config = config.db_config.model_dump(exclude_none=True)
            backend.settings = config.settings
            backend.updated_at = utcnow()
            self.db.commit()
        log.info("Backend updated", extra=extra)
        return backend

    def delete_backend(self, backend_id: str, principal: Principal) -> None:
        backend = self.store.get_backend(backend_id, principal)
        with locks.backend_lock(backend.id):
            backend_dir = self.directories.dir_for(backend)
            if self.directories.delete(backend_dir):
                log.info("Removed directory %s", backend_dir, extra={"backend_id": backend.id, "op": "delete_backend"})
            self.db.delete(backend)
            self.db.commit()
        locks.forget(backend_id)

    # Modules

    def _prepare(self, backend: UserBackend) -> Tuple[BackendConfig, Path]:
        """Reload, sync and load configuration; creates the directory when missing."""
        self.db.refresh(backend)
        self.sync_engine.sync(backend)
        config = self.store.load(backend)
        backend_dir = self.directories.dir_for(backend)
        if not self.directories.exists(backend_dir):
            log.warning("Directory missing, recreating %s", backend_dir,
                        extra={"backend_id": backend.id, "op": "prepare"})
            self.directories.create(backend_dir)
            backend.schema_version = CONSOLIDATED_SCHEMA_VERSION
            config.schema_version = CONSOLIDATED_SCHEMA_VERSION
            # Project files plus every listed module
            self.directories.write_files(
                backend_dir, render_backend_files(config, enforce_unique=self.settings.enforce_unique_fields)
            )
        return config, backend_dir

    def _entry_point_files(self, config: BackendConfig) -> List[GeneratedFile]:
        return [
            GeneratedFile(path="main.py", content=render_main_py(config.name, module_pairs(config))),
            GeneratedFile(path="README.md", content=render_readme(config)),
        ]

    def _render_out_of_process(self, config: BackendConfig, paths: List[str]) -> List[GeneratedFile]:
        with tempfile.TemporaryDirectory(prefix="backend-gen-") as tmp:
            config_path = Path(tmp) / CONFIG_FILENAME
            out_dir = Path(tmp) / "out"
            try:
                write_json_atomic(config_path, config.to_document())
                run_generation_subprocess(
                    config_path,
                    out_dir,
                    timeout=self.settings.generation_timeout,
                    enforce_unique=self.settings.enforce_unique_fields,
                )
                return [GeneratedFile(path=p, content=(out_dir / p).read_text(encoding="utf-8")) for p in paths]
            except OSError as e:
                log.error("Out-of-process generation in %s failed: %s", tmp, e, extra={"op": "generate"})
                raise StorageError("Failed to generate files", detail=str(e)) from e

    def _render_module_files(self, config: BackendConfig, module_name: str) -> List[GeneratedFile]:
        """Artifacts of ``module_name`` plus the refreshed entry point."""
        if self.settings.generation_mode == "subprocess":
            names = module_names(module_name)
            paths = [names.model_file, names.controller_file, names.route_file, "main.py", "README.md"]
            return self._render_out_of_process(config, paths)
        rendered = render_module(
            module_name,
            config.modules[module_name],
            enforce_unique=self.settings.enforce_unique_fields,
        )
        return module_files(rendered) + self._entry_point_files(config)

    def _commit_modules(self, backend: UserBackend, backend_dir: Path, config: BackendConfig) -> None:
        config.generated_modules.generated = repair_generated(config.modules, config.generated, backend.id)
        self.store.save_modules(backend, backend_dir, config)
        self.store.mirror_to_record(backend, config)
        self.db.commit()

    def generate_module(self, backend_id: str, principal: Principal, payload: Any) -> Tuple[str, ModuleDefinition]:
        backend = self.store.get_backend(backend_id, principal)
        req = parse_request(ModuleCreateRequest, payload)
        name = req.module_name
        extra = {"backend_id": backend.id, "op": "generate_module"}

        with locks.backend_lock(backend.id):
            config, backend_dir = self._prepare(backend)
            if name in config.generated:
                raise ConflictError(f"Module {name} already exists")
            slug = module_names(name).slug
            for existing in config.generated:
                if module_names(existing).slug == slug:
                    raise ConflictError(f"Module {name} already exists as {existing}")

            definition = definition_from_request(req, principal.id)
            config.modules[name] = definition
            config.generated.append(name)

            self.directories.write_files(backend_dir, self._render_module_files(config, name))
            self._commit_modules(backend, backend_dir, config)
        log.info("Module %s generated", name, extra=extra)
        return name, definition

    def update_module(
        self, backend_id: str, module_name: str, principal: Principal, payload: Any
    ) -> Tuple[str, ModuleDefinition]:
        backend = self.store.get_backend(backend_id, principal)
        req = parse_request(ModuleUpdateRequest, payload)

        with locks.backend_lock(backend.id):
            config, backend_dir = self._prepare(backend)
            current = config.modules.get(module_name)
            if current is None:
                raise NotFoundError(f"Module {module_name} not found")

            definition = definition_from_request(req, current.user_id or principal.id)
            config.modules[module_name] = definition
            if module_name not in config.generated:
                config.generated.append(module_name)

            self.directories.write_files(backend_dir, self._render_module_files(config, module_name))
            self._commit_modules(backend, backend_dir, config)
        log.info("Module %s updated", module_name, extra={"backend_id": backend.id, "op": "update_module"})
        return module_name, definition

    def delete_module(self, backend_id: str, module_name: str, principal: Principal) -> None:
        backend = self.store.get_backend(backend_id, principal)

        with locks.backend_lock(backend.id):
            config, backend_dir = self._prepare(backend)
            if module_name not in config.modules and module_name not in config.generated:
                raise NotFoundError(f"Module {module_name} not found")

            config.modules.pop(module_name, None)
            config.generated_modules.generated = [n for n in config.generated if n != module_name]

            self.directories.write_files(backend_dir, self._entry_point_files(config))
            self.directories.prune_unlisted(backend_dir, config.generated)
            self._commit_modules(backend, backend_dir, config)
        log.info("Module %s deleted", module_name, extra={"backend_id": backend.id, "op": "delete_module"})

    # Export and migration

    def export_backend(self, backend_id: str, principal: Principal) -> ExportArchive:
        backend = self.get_backend(backend_id, principal)
        config = self.store.load(backend)
        shared = Path(self.settings.shared_utils_dir) if self.settings.shared_utils_dir else None
        archive = export_backend(config, shared_utils_dir=shared, enforce_unique=self.settings.enforce_unique_fields)
        log.info("Exported %d file(s)", len(archive.files), extra={"backend_id": backend.id, "op": "export"})
        return archive

    def migrate_legacy(self, principal: Principal) -> MigrationSummary:
        if not principal.is_admin:
            raise PermissionDeniedError("Only administrators can run the legacy migration")

        results = []
        for backend in self.db.scalars(select(UserBackend).order_by(UserBackend.created_at)).all():
            with locks.backend_lock(backend.id):
                try:
                    outcome = self.store.migrate_legacy_to_consolidated(backend)
                    item = MigrationResultItem(id=backend.id, name=backend.name, status=outcome.status, reason=outcome.reason)
                except PlatformError as e:
                    self.db.rollback()
                    log.error("Migration failed: %s", e.message, extra={"backend_id": backend.id, "op": "migrate"})
                    item = MigrationResultItem(id=backend.id, name=backend.name, status="error", reason=e.detail or e.message)
            results.append(item)

        summary = MigrationSummary(
            total=len(results),
            migrated=sum(1 for r in results if r.status == "migrated"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            errors=sum(1 for r in results if r.status == "error"),
            results=results,
        )
        log.info("Legacy migration finished: %d migrated, %d skipped, %d errors",
                 summary.migrated, summary.skipped, summary.errors, extra={"backend_id": "-", "op": "migrate"})
        return summary
