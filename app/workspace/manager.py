"""On-disk layout of generated backends."""
from __future__ import annotations
import logging
import shutil
from pathlib import Path
from typing import Iterable, List
from app.core.errors import StorageError
from app.generators.backend_gen.types import GeneratedFile, RenderedModule
from app.generators.backend_gen.generator import module_files
from app.generators.backend_gen.utils import module_names, sanitize_name
from app.generators.backend_gen.writer import write_files

log = logging.getLogger(__name__)

BACKEND_SUBDIRS = ("models", "controllers", "routes", "config", "utils")
# Files in the artifact directories that never belong to a single module
SHARED_ARTIFACTS = {"__init__.py", "base_model.py"}


class BackendDirectoryManager:
    """Owns ``<root>/<owner>/<backend>`` trees. Every path is derived from ``root_path``."""

    def __init__(self, root_path: Path | str):
        self.root = Path(root_path)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def backend_dir(self, owner_name: str, user_id: str, backend_name: str) -> Path:
        if owner_name:
            return self.root / sanitize_name(owner_name) / sanitize_name(backend_name)
        # No username recorded: fall back to the owner id
        return self.root / user_id / sanitize_name(backend_name)

    def dir_for(self, backend) -> Path:
        return self.backend_dir(backend.owner_name, backend.user_id, backend.name)

    def exists(self, backend_dir: Path) -> bool:
        return backend_dir.is_dir()

    def create(self, backend_dir: Path) -> Path:
        try:
            backend_dir.mkdir(parents=True, exist_ok=True)
            for sub in BACKEND_SUBDIRS:
                (backend_dir / sub).mkdir(exist_ok=True)
        except OSError as e:
            log.error("Failed to create backend directory %s: %s", backend_dir, e)
            raise StorageError("Failed to create backend directory", detail=str(e)) from e
        return backend_dir

    def rename(self, old_dir: Path, new_dir: Path) -> bool:
        """Move a backend tree. Returns False when nothing was moved.

        Never clobbers: an existing target or a missing source is a no-op.
        """
        if old_dir == new_dir or not old_dir.exists():
            return False
        if new_dir.exists():
            log.warning("Rename target %s already exists, leaving %s in place", new_dir, old_dir)
            return False
        try:
            new_dir.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(old_dir), str(new_dir))
        except OSError as e:
            log.error("Failed to move %s to %s: %s", old_dir, new_dir, e)
            raise StorageError("Failed to rename backend directory", detail=str(e)) from e
        return True

    def write_files(self, backend_dir: Path, files: List[GeneratedFile]) -> None:
        try:
            write_files(files, backend_dir)
        except OSError as e:
            log.error("Failed to write files under %s: %s", backend_dir, e)
            raise StorageError("Failed to write backend files", detail=str(e)) from e

    def write_module_artifacts(self, backend_dir: Path, rendered: RenderedModule) -> List[str]:
        files = module_files(rendered)
        self.write_files(backend_dir, files)
        return [f.path for f in files]

    def prune_unlisted(self, backend_dir: Path, active_modules: Iterable[str]) -> List[str]:
        """Delete model/controller/route files of modules not in ``active_modules``.

        Best effort: per-file failures are logged and skipped.
        """
        keep = set()
        for name in active_modules:
            names = module_names(name)
            keep.update({names.model_file, names.controller_file, names.route_file})

        patterns = {"models": "*.py", "controllers": "*_controller.py", "routes": "*_routes.py"}
        removed = []
        for sub, pattern in patterns.items():
            directory = backend_dir / sub
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob(pattern)):
                if path.name in SHARED_ARTIFACTS:
                    continue
                rel = f"{sub}/{path.name}"
                if rel in keep:
                    continue
                try:
                    path.unlink()
                    removed.append(rel)
                    log.info("Removed unused file: %s", rel)
                except OSError as e:
                    log.warning("Could not remove %s: %s", path, e)
        return removed

    def delete(self, backend_dir: Path) -> bool:
        if not backend_dir.exists():
            return False
        try:
            shutil.rmtree(backend_dir)
        except OSError as e:
            log.error("Failed to delete %s: %s", backend_dir, e)
            raise StorageError("Failed to delete backend directory", detail=str(e)) from e
        return True
