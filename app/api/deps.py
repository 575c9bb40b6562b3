from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from app.core.principal import Principal
from app.db.session import get_db
from app.services.backend_service import BackendService


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_admin: Optional[str] = Header(None),
) -> Principal:
    """Principal forwarded by the authenticating gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    is_admin = (x_user_admin or "").strip().lower() in ("1", "true", "yes")
    return Principal(id=x_user_id, username=x_user_name or "", is_admin=is_admin)


def get_service(db: Session = Depends(get_db)) -> BackendService:
    return BackendService(db)
