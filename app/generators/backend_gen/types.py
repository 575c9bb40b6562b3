"""Dataclasses for backend generation."""
from dataclasses import dataclass


@dataclass(frozen=True)
class FieldTypeMapping:
    """Storage column type and request validation type for a field kind."""
    storage_type: str  # SQLAlchemy type name, e.g. "Text"
    python_type: str  # Annotation used in pydantic schemas, e.g. "str"


@dataclass(frozen=True)
class ModuleNames:
    """Identifiers and paths derived from a module name."""
    class_name: str
    slug: str  # snake_case, used for file names and handler names
    plural_slug: str  # table name and URL segment
    model_file: str
    controller_file: str
    route_file: str


@dataclass
class RenderedModule:
    """Source text of a module's generated artifacts."""
    module_name: str
    model_source: str
    controller_source: str
    route_source: str


@dataclass
class GeneratedFile:
    """Represents a generated file."""
    path: str  # Relative path from output directory
    content: str  # File contents
