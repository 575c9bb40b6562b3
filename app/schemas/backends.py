import keyword
import re
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing import Literal, Optional, Dict, Any, List, Type, TypeVar
from datetime import datetime
from app.core.errors import ValidationError
from app.generators.backend_gen.utils import reserved_field_name, reserved_module_name
from app.schemas.config import ApiFlags, DbConfig

DbType = Literal["mysql", "postgres", "sqlite", "mongodb"]

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
BASE_FIELD_NAMES = {"id", "created_at", "updated_at", "createdat", "updatedat"}

M = TypeVar("M", bound=BaseModel)


def _check_identifier(value: str, what: str) -> str:
    if not IDENTIFIER_RE.match(value) or keyword.iskeyword(value):
        raise ValueError(f"{what} '{value}' must be a valid identifier")
    return value


class DbConfigInput(BaseModel):
    host: str = "localhost"
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class BackendCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, examples=["Shop"])
    description: Optional[str] = None
    db_type: DbType = Field("mysql", alias="dbType")
    db_config: Optional[DbConfigInput] = Field(None, alias="dbConfig")
    settings: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value


class BackendUpdateRequest(BaseModel):
    """Partial update; omitted keys keep their stored value."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    db_type: Optional[DbType] = Field(None, alias="dbType")
    db_config: Optional[DbConfigInput] = Field(None, alias="dbConfig")
    settings: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("name must not be blank")
        return value


class FieldInput(BaseModel):
    name: str = Field(..., min_length=1, examples=["title"])
    type: str = Field(..., min_length=1, examples=["String"])
    unique: bool = False
    optional: bool = False

    @field_validator("name")
    @classmethod
    def _identifier(cls, value: str) -> str:
        return _check_identifier(value, "Field name")


class ModuleUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fields: List[FieldInput] = Field(..., min_length=1)
    apis: ApiFlags = Field(default_factory=ApiFlags)

    @model_validator(mode="after")
    def _check_fields_and_apis(self):
        seen = set()
        for f in self.fields:
            lowered = f.name.lower()
            if lowered in BASE_FIELD_NAMES or reserved_field_name(f.name):
                raise ValueError(f"Field name '{f.name}' is reserved")
            if lowered in seen:
                raise ValueError(f"Duplicate field name '{f.name}'")
            seen.add(lowered)
        if not self.apis.any_enabled():
            raise ValueError("At least one API must be selected")
        return self


class ModuleCreateRequest(ModuleUpdateRequest):
    module_name: str = Field(..., min_length=1, alias="moduleName", examples=["Product"])

    @field_validator("module_name")
    @classmethod
    def _identifier(cls, value: str) -> str:
        _check_identifier(value, "Module name")
        if reserved_module_name(value):
            raise ValueError(f"Module name '{value}' is reserved")
        return value


class BackendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    db_type: str = Field(alias="dbType")
    db_config: DbConfig = Field(alias="dbConfig")
    user_id: str = Field(alias="userId")
    modules: Dict[str, Any] = {}
    generated_modules: Dict[str, Any] = Field({"generated": []}, alias="generatedModules")
    settings: Optional[Dict[str, Any]] = None
    status: str
    schema_version: int = Field(alias="schemaVersion")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class ModuleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    module_name: str = Field(alias="moduleName")
    fields: List[FieldInput]
    apis: ApiFlags


class MigrationResultItem(BaseModel):
    id: str
    name: str
    status: Literal["migrated", "skipped", "error"]
    reason: Optional[str] = None


class MigrationSummary(BaseModel):
    total: int
    migrated: int
    skipped: int
    errors: int
    results: List[MigrationResultItem]


def parse_request(model_cls: Type[M], payload: Any) -> M:
    """Validate a raw request body, mapping pydantic failures to ``ValidationError``."""
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError("Invalid input", detail=messages) from e
