from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from app.api.deps import get_current_user, get_service
from app.core.errors import PermissionDeniedError
from app.core.principal import Principal
from app.db.models import UserBackend
from app.schemas.backends import BackendResponse, FieldInput, ModuleResponse
from app.schemas.config import ModuleDefinition
from app.services.backend_service import BackendService
from app.tasks.migrations import run_legacy_migration

router = APIRouter(prefix="/backends")


def envelope(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "message": message, "data": data})


def backend_payload(backend: UserBackend) -> Dict[str, Any]:
    return BackendResponse(
        id=backend.id,
        name=backend.name,
        description=backend.description,
        dbType=backend.db_type,
        dbConfig=backend.db_config or {},
        userId=backend.user_id,
        modules=backend.modules or {},
        generatedModules=backend.generated_modules or {"generated": []},
        settings=backend.settings,
        status=backend.status,
        schemaVersion=backend.schema_version,
        createdAt=backend.created_at,
        updatedAt=backend.updated_at,
    ).model_dump(mode="json", by_alias=True)


def module_payload(name: str, definition: ModuleDefinition) -> Dict[str, Any]:
    return ModuleResponse(
        moduleName=name,
        fields=[FieldInput(name=n, **f.model_dump()) for n, f in definition.fields.items()],
        apis=definition.apis,
    ).model_dump(mode="json", by_alias=True)


@router.get("")
def list_backends(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    backends, total = service.list_backends(principal, page=page, limit=limit)
    return envelope("Backends retrieved", {
        "items": [backend_payload(b) for b in backends],
        "pagination": {"page": page, "limit": limit, "total": total},
    })


@router.post("")
def create_backend(
    payload: Optional[Dict[str, Any]] = Body(None),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    backend = service.create_backend(principal, payload or {})
    return envelope("Backend created successfully", backend_payload(backend), status_code=201)


@router.post("/migrate")
def migrate_legacy(
    background: bool = Query(False),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    if background:
        if not principal.is_admin:
            raise PermissionDeniedError("Only administrators can run the legacy migration")
        task = run_legacy_migration.delay(principal.id, principal.username)
        return envelope("Migration scheduled", {"taskId": task.id}, status_code=202)
    summary = service.migrate_legacy(principal)
    return envelope("Migration completed", summary.model_dump(mode="json"))


@router.get("/{backend_id}")
def get_backend(
    backend_id: str,
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    return envelope("Backend retrieved", backend_payload(service.get_backend(backend_id, principal)))


@router.put("/{backend_id}")
def update_backend(
    backend_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    backend = service.update_backend(backend_id, principal, payload or {})
    return envelope("Backend updated successfully", backend_payload(backend))


@router.delete("/{backend_id}")
def delete_backend(
    backend_id: str,
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    service.delete_backend(backend_id, principal)
    return envelope("Backend deleted successfully")


@router.post("/{backend_id}/modules")
def generate_module(
    backend_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    name, definition = service.generate_module(backend_id, principal, payload or {})
    return envelope(f"Module {name} generated successfully", module_payload(name, definition), status_code=201)


@router.put("/{backend_id}/modules/{module_name}")
def update_module(
    backend_id: str,
    module_name: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    name, definition = service.update_module(backend_id, module_name, principal, payload or {})
    return envelope(f"Module {name} updated successfully", module_payload(name, definition))


@router.delete("/{backend_id}/modules/{module_name}")
def delete_module(
    backend_id: str,
    module_name: str,
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    service.delete_module(backend_id, module_name, principal)
    return envelope(f"Module {module_name} deleted successfully")


@router.get("/{backend_id}/export")
def export_backend(
    backend_id: str,
    principal: Principal = Depends(get_current_user),
    service: BackendService = Depends(get_service),
):
    archive = service.export_backend(backend_id, principal)
    return StreamingResponse(
        archive.stream,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive.filename}"'},
    )
