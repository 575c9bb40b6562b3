"""Field kind to storage/validation type mapping."""
from typing import Dict
from app.generators.backend_gen.types import FieldTypeMapping

FALLBACK_MAPPING = FieldTypeMapping(storage_type="Text", python_type="str")

_TYPE_MAP: Dict[str, FieldTypeMapping] = {
    "String": FieldTypeMapping(storage_type="Text", python_type="str"),
    "Number": FieldTypeMapping(storage_type="Float", python_type="float"),
    "Boolean": FieldTypeMapping(storage_type="Boolean", python_type="bool"),
}


def map_type(kind: str) -> FieldTypeMapping:
    """Return the mapping for ``kind``.

    Date, Object, Array and any unrecognised kind are stored as text and
    validated as strings.
    """
    return _TYPE_MAP.get(kind, FALLBACK_MAPPING)


def storage_imports(kinds) -> list:
    """Sorted SQLAlchemy type names needed for a set of field kinds."""
    return sorted({map_type(kind).storage_type for kind in kinds} or {FALLBACK_MAPPING.storage_type})
