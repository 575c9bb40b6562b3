"""Module-specific rendering functions: model, controller and route source."""
from typing import Dict, List, Tuple
from app.schemas.config import ApiFlags, FieldDefinition, ModuleDefinition
from app.generators.backend_gen.field_types import map_type, storage_imports
from app.generators.backend_gen.types import RenderedModule
from app.generators.backend_gen.utils import module_names

# (api flag, handler name template, HTTP method, route path)
HANDLER_TABLE: List[Tuple[str, str, str, str]] = [
    ("read_all", "get_all_{plural}", "GET", ""),
    ("read_by_id", "get_{slug}_by_id", "GET", "/{id}"),
    ("create", "create_{slug}", "POST", ""),
    ("update", "update_{slug}", "PUT", "/{id}"),
    ("delete", "delete_{slug}", "DELETE", "/{id}"),
]


def enabled_handlers(module_name: str, apis: ApiFlags) -> List[Tuple[str, str, str, str]]:
    """Return (flag, handler name, method, path) for every enabled API, in route order."""
    names = module_names(module_name)
    handlers = []
    for flag, template, method, path in HANDLER_TABLE:
        if getattr(apis, flag):
            handler = template.format(plural=names.plural_slug, slug=names.slug)
            handlers.append((flag, handler, method, path))
    return handlers


def _create_annotation(field: FieldDefinition) -> str:
    base_type = map_type(field.type).python_type
    if field.optional:
        return f"Optional[{base_type}] = None"
    return base_type


def render_model(module_name: str, definition: ModuleDefinition, enforce_unique: bool = False) -> str:
    """Generate the SQLAlchemy model for a module."""
    names = module_names(module_name)
    fields = definition.fields

    lines = [
        "from typing import Optional",
        "",
        f"from sqlalchemy import {', '.join(storage_imports(f.type for f in fields.values()))}",
        "from sqlalchemy.orm import Mapped, mapped_column",
        "",
        "from models.base_model import Base, BaseModelMixin",
        "",
        "",
        f"class {names.class_name}(BaseModelMixin, Base):",
        f'    __tablename__ = "{names.plural_slug}"',
        "",
    ]

    for field_name, field in fields.items():
        mapping = map_type(field.type)
        extra = ""
        if field.unique and enforce_unique:
            extra = ", unique=True"
        column = f"    {field_name}: Mapped[Optional[{mapping.python_type}]] = mapped_column({mapping.storage_type}, nullable=True{extra})"
        if field.unique and not enforce_unique:
            column += "  # declared unique, not enforced by the database"
        lines.append(column)

    lines.append("")
    return "\n".join(lines)


def render_controller(module_name: str, definition: ModuleDefinition) -> str:
    """Generate request schemas and CRUD handlers for a module."""
    names = module_names(module_name)
    cls = names.class_name
    apis = definition.apis
    fields = definition.fields
    handlers: Dict[str, str] = {flag: handler for flag, handler, _, _ in enabled_handlers(module_name, apis)}
    has_body = apis.create or apis.update

    lines = ["from typing import Any, Dict, Optional", ""]
    lines.append("from fastapi import Body, Depends" if has_body else "from fastapi import Depends")
    if has_body:
        lines.append("from pydantic import BaseModel, ValidationError")
    if apis.read_all:
        lines.append("from sqlalchemy import func, select")
    lines += [
        "from sqlalchemy.orm import Session",
        "",
        "from config.db import get_db",
        f"from models.{names.slug} import {cls}",
    ]
    if apis.read_all:
        lines.append("from utils.pagination import get_pagination")
    lines += [
        "from utils.response_handler import send_error, send_success",
        "",
        "",
    ]

    if apis.create:
        lines.append(f"class {cls}Create(BaseModel):")
        for field_name, field in fields.items():
            lines.append(f"    {field_name}: {_create_annotation(field)}")
        if not fields:
            lines.append("    pass")
        lines += ["", ""]

    if apis.update:
        lines.append(f"class {cls}Update(BaseModel):")
        for field_name, field in fields.items():
            lines.append(f"    {field_name}: Optional[{map_type(field.type).python_type}] = None")
        if not fields:
            lines.append("    pass")
        lines += ["", ""]

    not_found = f'            return send_error(status=404, message="{cls} not found")'

    if "read_all" in handlers:
        lines += [
            f"def {handlers['read_all']}(page: int = 1, limit: int = 10, db: Session = Depends(get_db)):",
            "    try:",
            "        pagination = get_pagination(page, limit)",
            f"        total = db.scalar(select(func.count()).select_from({cls})) or 0",
            "        items = db.scalars(",
            f"            select({cls})",
            f"            .order_by({cls}.created_at.desc())",
            "            .limit(pagination.limit)",
            "            .offset(pagination.offset)",
            "        ).all()",
            "        return send_success(",
            f'            message="{cls} list fetched successfully",',
            "            data={",
            '                "items": [item.to_dict() for item in items],',
            '                "total": total,',
            '                "page": pagination.page,',
            '                "limit": pagination.limit,',
            '                "totalPages": pagination.total_pages(total),',
            "            },",
            "        )",
            "    except Exception as exc:",
            "        return send_error(message=str(exc))",
            "",
            "",
        ]

    if "read_by_id" in handlers:
        lines += [
            f"def {handlers['read_by_id']}(id: str, db: Session = Depends(get_db)):",
            "    try:",
            f"        item = db.get({cls}, id)",
            "        if item is None:",
            not_found,
            f'        return send_success(message="{cls} fetched successfully", data=item.to_dict())',
            "    except Exception as exc:",
            "        return send_error(message=str(exc))",
            "",
            "",
        ]

    if "create" in handlers:
        lines += [
            f"def {handlers['create']}(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):",
            "    try:",
            f"        data = {cls}Create.model_validate(payload)",
            "    except ValidationError as exc:",
            "        return send_error(status=400, message=str(exc))",
            "    try:",
            f"        item = {cls}(**data.model_dump())",
            "        db.add(item)",
            "        db.commit()",
            "        db.refresh(item)",
            f'        return send_success(status=201, message="{cls} created successfully", data=item.to_dict())',
            "    except Exception as exc:",
            "        db.rollback()",
            "        return send_error(message=str(exc))",
            "",
            "",
        ]

    if "update" in handlers:
        lines += [
            f"def {handlers['update']}(id: str, payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):",
            "    try:",
            f"        data = {cls}Update.model_validate(payload)",
            "    except ValidationError as exc:",
            "        return send_error(status=400, message=str(exc))",
            "    try:",
            f"        item = db.get({cls}, id)",
            "        if item is None:",
            not_found,
            "        for key, value in data.model_dump(exclude_unset=True).items():",
            "            setattr(item, key, value)",
            "        db.commit()",
            "        db.refresh(item)",
            f'        return send_success(message="{cls} updated successfully", data=item.to_dict())',
            "    except Exception as exc:",
            "        db.rollback()",
            "        return send_error(message=str(exc))",
            "",
            "",
        ]

    if "delete" in handlers:
        lines += [
            f"def {handlers['delete']}(id: str, db: Session = Depends(get_db)):",
            "    try:",
            f"        item = db.get({cls}, id)",
            "        if item is None:",
            not_found,
            "        db.delete(item)",
            "        db.commit()",
            f'        return send_success(message="{cls} deleted successfully")',
            "    except Exception as exc:",
            "        db.rollback()",
            "        return send_error(message=str(exc))",
            "",
            "",
        ]

    # Drop the trailing blank separator so the file ends with a single newline
    while lines and lines[-1] == "":
        lines.pop()
    lines.append("")
    return "\n".join(lines)


def render_routes(module_name: str, definition: ModuleDefinition) -> str:
    """Generate the APIRouter wiring for the enabled handlers only."""
    names = module_names(module_name)
    handlers = enabled_handlers(module_name, definition.apis)

    lines = ["from fastapi import APIRouter", ""]
    if handlers:
        lines.append(f"from controllers.{names.slug}_controller import (")
        for handler in sorted(h for _, h, _, _ in handlers):
            lines.append(f"    {handler},")
        lines.append(")")
        lines.append("")
    lines += ["router = APIRouter()", ""]
    for _, handler, method, path in handlers:
        lines.append(f'router.add_api_route("{path}", {handler}, methods=["{method}"])')
    lines.append("")
    return "\n".join(lines)


def render_module(module_name: str, definition: ModuleDefinition, enforce_unique: bool = False) -> RenderedModule:
    """Render the model/controller/route triple for a module. Pure: no I/O."""
    return RenderedModule(
        module_name=module_name,
        model_source=render_model(module_name, definition, enforce_unique=enforce_unique),
        controller_source=render_controller(module_name, definition),
        route_source=render_routes(module_name, definition),
    )
