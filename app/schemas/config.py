"""Persisted shapes: the consolidated configuration document and its parts."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

log = logging.getLogger(__name__)

LEGACY_SCHEMA_VERSION = 1
CONSOLIDATED_SCHEMA_VERSION = 2


class FieldDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = "String"
    unique: bool = False
    optional: bool = False


class ApiFlags(BaseModel):
    """Which CRUD handlers a module exposes, stored under the post/get/getById/put/delete keys."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    create: bool = Field(True, alias="post")
    read_all: bool = Field(True, alias="get")
    read_by_id: bool = Field(True, alias="getById")
    update: bool = Field(True, alias="put")
    delete: bool = Field(True, alias="delete")

    def any_enabled(self) -> bool:
        return any((self.create, self.read_all, self.read_by_id, self.update, self.delete))


class ModuleDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fields: Dict[str, FieldDefinition] = Field(default_factory=dict)
    apis: ApiFlags = Field(default_factory=ApiFlags)
    user_id: Optional[str] = Field(None, alias="userId")

    @field_validator("fields", mode="before")
    @classmethod
    def _fields_from_list(cls, value: Any) -> Any:
        # Older relational records kept fields as [{name, type, unique}]
        if isinstance(value, list):
            return {
                item["name"]: {k: v for k, v in item.items() if k != "name"}
                for item in value
                if isinstance(item, dict) and item.get("name")
            }
        return value or {}

    @field_validator("apis", mode="before")
    @classmethod
    def _apis_default(cls, value: Any) -> Any:
        return value or {}


class DbConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str = "localhost"
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class GeneratedModules(BaseModel):
    generated: List[str] = Field(default_factory=list)


def coerce_db_config(value: Any) -> Dict[str, Any]:
    """Accept dict, JSON string (older records), or nothing."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            log.error("Invalid stored dbConfig, using defaults: %s", e)
            return {}
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if v is not None}


class BackendConfig(BaseModel):
    """The consolidated ``backend-config.json`` document."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    schema_version: int = Field(CONSOLIDATED_SCHEMA_VERSION, alias="schemaVersion")
    name: str
    description: Optional[str] = None
    db_type: str = Field("mysql", alias="dbType")
    db_config: DbConfig = Field(default_factory=DbConfig, alias="dbConfig")
    user_id: Optional[str] = Field(None, alias="userId")
    modules: Dict[str, ModuleDefinition] = Field(default_factory=dict)
    generated_modules: GeneratedModules = Field(default_factory=GeneratedModules, alias="generatedModules")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    settings: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("db_config", mode="before")
    @classmethod
    def _db_config(cls, value: Any) -> Any:
        return coerce_db_config(value)

    @field_validator("generated_modules", mode="before")
    @classmethod
    def _generated(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"generated": value}
        return value or {}

    @field_validator("modules", "settings", mode="before")
    @classmethod
    def _empty_dict(cls, value: Any) -> Any:
        return value or {}

    @property
    def generated(self) -> List[str]:
        return self.generated_modules.generated

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def modules_document(self) -> Dict[str, Any]:
        return {name: module.model_dump(mode="json", by_alias=True) for name, module in self.modules.items()}

    def generated_document(self) -> Dict[str, Any]:
        return self.generated_modules.model_dump(mode="json")
