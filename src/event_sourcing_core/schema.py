"""
JSON Schema validation of message payloads.

Uses the ``jsonschema`` library (Draft 2020-12). Every violation is collected.

``SchemaResult.missing`` lists the JSON-pointer paths of required properties
absent from the payload (``/owner``, ``/address/city``), not unresolved schema
references; a dangling ``$ref`` raises from jsonschema instead of being
collected. Handlers format each entry as ``Missing <path>``. Every other
violation goes to ``errors`` with jsonschema's own message and the path of
the offending value.
"""
from typing import Any, Dict, List

import jsonschema
from pydantic import BaseModel, Field

from .errors import ConfigurationError


class SchemaViolation(BaseModel):
    message: str
    path: str = ""


class SchemaResult(BaseModel):
    missing: List[str] = Field(default_factory=list)
    errors: List[SchemaViolation] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.missing and not self.errors


def _format_path(parts) -> str:
    return "".join(f"/{p}" for p in parts)


def check_schema(schema: Dict[str, Any]):
    """Raises ConfigurationError if `schema` is not itself a valid JSON Schema."""
    try:
        jsonschema.Draft202012Validator.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise ConfigurationError(f"Invalid payload schema: {e.message}") from e


class JsonSchemaValidator:
    """Default `SchemaValidator` backed by jsonschema's Draft 2020-12 validator."""

    def validate(self, payload: Any, schema: Dict[str, Any]) -> SchemaResult:
        result = SchemaResult()
        validator = jsonschema.Draft202012Validator(schema)
        for error in validator.iter_errors(payload):
            if error.validator == "required" and isinstance(error.instance, dict):
                for field in error.validator_value:
                    if field in error.instance:
                        continue
                    path = _format_path([*error.absolute_path, field])
                    if path not in result.missing:
                        result.missing.append(path)
                continue
            result.errors.append(
                SchemaViolation(
                    message=error.message,
                    path=_format_path(error.absolute_path),
                )
            )
        return result
