"""Utility functions for backend generation."""
import re
from app.generators.backend_gen.types import ModuleNames

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]")


def sanitize_name(raw: str) -> str:
    """Lower-case ``raw`` and replace every character outside [a-z0-9] with '_'.

    Used for directory segments only; generated identifiers keep their casing.
    """
    if not raw:
        raise ValueError("Cannot sanitize an empty name")
    return _UNSAFE_CHARS.sub("_", raw.lower())


def to_snake_case(name: str) -> str:
    """Convert PascalCase or camelCase to snake_case."""
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', name)
    s2 = re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1)
    return s2.lower()


def to_plural_snake_case(name: str) -> str:
    """Convert module name to plural snake_case for table names and URL segments."""
    singular = to_snake_case(name)
    # Simple pluralization - add 's' or 'es' for common cases
    if singular.endswith('s') or singular.endswith('x') or singular.endswith('z') or singular.endswith('ch') or singular.endswith('sh'):
        return singular + 'es'
    elif singular.endswith('y') and len(singular) > 1 and singular[-2] not in 'aeiou':
        return singular[:-1] + 'ies'
    else:
        return singular + 's'


def to_dashed(name: str) -> str:
    """Lower-case and collapse whitespace to dashes (package and archive names)."""
    return re.sub(r"\s+", "-", name.strip().lower())


def default_database_name(backend_name: str) -> str:
    return re.sub(r"\s+", "_", backend_name.strip().lower())


def module_names(module_name: str) -> ModuleNames:
    """Derive class, file and table identifiers for a module."""
    slug = to_snake_case(module_name)
    return ModuleNames(
        class_name=module_name[:1].upper() + module_name[1:],
        slug=slug,
        plural_slug=to_plural_snake_case(module_name),
        model_file=f"models/{slug}.py",
        controller_file=f"controllers/{slug}_controller.py",
        route_file=f"routes/{slug}_routes.py",
    )


# Files the project scaffold owns inside models/
RESERVED_MODULE_SLUGS = {"base_model", "__init__"}
# Names imported into generated model, controller and entry point modules
RESERVED_CLASS_NAMES = {
    "Any", "Dict", "Optional", "Body", "Depends", "BaseModel", "ValidationError", "Session",
    "Base", "BaseModelMixin", "DeclarativeBase", "Mapped", "Text", "Float", "Boolean", "String",
    "DateTime", "FastAPI", "APIRouter",
}
# Attributes taken by SQLAlchemy declarative classes, the model mixin or pydantic models,
# plus the names a model class body resolves for its column annotations
RESERVED_FIELD_NAMES = {
    "metadata", "registry", "query", "to_dict",
    "model_config", "model_fields", "model_computed_fields",
    "Optional", "Mapped", "mapped_column", "Text", "Float", "Boolean", "str", "float", "bool",
}
RESERVED_FIELD_PREFIXES = ("_", "model_")


def reserved_module_name(module_name: str) -> bool:
    names = module_names(module_name)
    return names.slug in RESERVED_MODULE_SLUGS or names.class_name in RESERVED_CLASS_NAMES


def reserved_field_name(field_name: str) -> bool:
    return field_name in RESERVED_FIELD_NAMES or field_name.startswith(RESERVED_FIELD_PREFIXES)
