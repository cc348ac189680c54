from __future__ import annotations

import importlib
from pathlib import Path

from shimdeploy.core.errors import ValidationError


def contracts_schemas_dir() -> Path:
    """Directory holding the shipped JSON Schemas (agent config, results, trace events)."""
    package = importlib.import_module("contracts")
    location = getattr(package, "__file__", None)
    if not location:
        raise ValidationError(code="contracts.missing", message="The contracts package is not installed on the filesystem")
    schemas = Path(location).resolve().parent / "schemas"
    if not schemas.is_dir():
        raise ValidationError(code="contracts.missing", message=f"Schema directory not found: {schemas}", data={"path": str(schemas)})
    return schemas
