"""Read-time reconciliation of the backend directory into the relational record."""
from __future__ import annotations
import logging
from enum import Enum
from typing import Any, Dict, List
from app.db.models import UserBackend, utcnow
from app.schemas.config import CONSOLIDATED_SCHEMA_VERSION
from app.workspace.config_store import ConfigurationStore

log = logging.getLogger(__name__)


class SyncState(str, Enum):
    DIRECTORY_MISSING = "DIRECTORY_MISSING"
    LEGACY_UNSYNCED = "LEGACY_UNSYNCED"
    CONSOLIDATED_SYNCED = "CONSOLIDATED_SYNCED"


def repair_generated(modules: Dict[str, Any], generated: List[str], backend_id: str = "-") -> List[str]:
    """Keep only generated names that still have a definition, without duplicates."""
    kept: List[str] = []
    for name in generated:
        if name in modules and name not in kept:
            kept.append(name)
    dropped = [name for name in generated if name not in modules]
    if dropped:
        log.warning("Generated modules without definitions dropped: %s", dropped,
                    extra={"backend_id": backend_id, "op": "sync"})
    return kept


class SyncEngine:
    """Copies module state from the directory onto the record. Never writes the directory."""

    def __init__(self, store: ConfigurationStore):
        self.store = store

    def state_of(self, backend: UserBackend) -> SyncState:
        if not self.store.directories.exists(self.store.directories.dir_for(backend)):
            return SyncState.DIRECTORY_MISSING
        if backend.schema_version >= CONSOLIDATED_SCHEMA_VERSION:
            return SyncState.CONSOLIDATED_SYNCED
        return SyncState.LEGACY_UNSYNCED

    def sync(self, backend: UserBackend) -> SyncState:
        state = self.state_of(backend)
        extra = {"backend_id": backend.id, "op": "sync"}
        backend_dir = self.store.directories.dir_for(backend)

        if state is SyncState.DIRECTORY_MISSING:
            log.debug("No directory for backend, record is authoritative", extra=extra)
            modules = backend.modules or {}
            generated = backend.generated_names
        elif state is SyncState.LEGACY_UNSYNCED:
            modules, generated = self.store.read_legacy(backend_dir)
        else:
            config = self.store.read_document(backend_dir)
            if config is None:
                # Unreadable document: keep what the record already has
                log.warning("Configuration document missing or corrupt, record left as is", extra=extra)
                return state
            modules, generated = config.modules_document(), config.generated

        generated = repair_generated(modules, generated, backend.id)
        if modules != (backend.modules or {}) or generated != backend.generated_names:
            backend.modules = modules
            backend.generated_modules = {"generated": generated}
            backend.updated_at = utcnow()
            self.store.db.commit()
            log.info("Record synced from %s", state.value, extra=extra)
        return state
