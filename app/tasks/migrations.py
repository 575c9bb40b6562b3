from __future__ import annotations
import logging
from sqlalchemy.orm import Session
from app.tasks.celery_app import celery_app
from app.db.session import SessionLocal
from app.core.principal import Principal
from app.services.backend_service import BackendService

log = logging.getLogger(__name__)


@celery_app.task(name="run_legacy_migration")
def run_legacy_migration(admin_id: str, admin_name: str = "") -> dict:
    """Background form of the legacy-to-consolidated migration. Returns the summary."""
    db: Session = SessionLocal()
    try:
        log.info("Starting legacy migration", extra={"backend_id": "-", "op": "migrate"})
        service = BackendService(db)
        summary = service.migrate_legacy(Principal(id=admin_id, username=admin_name, is_admin=True))
        return summary.model_dump(mode="json")
    except Exception:
        db.rollback()
        log.exception("Legacy migration failed", extra={"backend_id": "-", "op": "migrate"})
        raise
    finally:
        db.close()
