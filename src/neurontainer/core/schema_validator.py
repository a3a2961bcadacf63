"""
JSON Schema Validator

Validates caller-supplied action parameters against the action's declared
JSON schema and turns violations into a message the caller can act on.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

PARAMS_ROOT = "instance"
SCHEMA_FAILURE_HEADER = (
    "Action failed, your inputs did not pass schema validation due to these problems:"
)
SCHEMA_FAILURE_FOOTER = (
    "Please pay attention to the schema and the above errors if you choose to retry."
)
UNKNOWN_SCHEMA_ERROR = "Unknown schema validation error."


@dataclass
class SchemaViolation:
    """A single violation; `path` is dotted and relative to the params object"""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} {self.message}" if self.path else self.message


@dataclass
class SchemaValidationResult:
    valid: bool
    errors: List[SchemaViolation] = field(default_factory=list)


def _format_path(parts: Iterable[Any]) -> str:
    path = PARAMS_ROOT
    for part in parts:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def strip_params_root(path: str) -> str:
    """`instance.container` -> `container`, `instance[0]` -> `[0]`; the bare root becomes empty"""
    if path == PARAMS_ROOT:
        return ""
    if path.startswith(PARAMS_ROOT + "."):
        return path[len(PARAMS_ROOT) + 1:]
    if path.startswith(PARAMS_ROOT + "["):
        return path[len(PARAMS_ROOT):]
    return path


def validate(params: Any, schema: Dict[str, Any]) -> SchemaValidationResult:
    """
    Validate params against a JSON schema (draft 7).

    Required properties are always enforced. Errors are ordered by their
    location in the params object.
    """
    try:
        Draft7Validator.check_schema(schema)
        validator = Draft7Validator(schema)
        raw_errors = sorted(validator.iter_errors(params), key=lambda e: list(map(str, e.path)))
    except SchemaError as e:
        logger.error(f"Action schema is invalid: {e.message}")
        return SchemaValidationResult(
            valid=False,
            errors=[SchemaViolation(path="", message=f"action schema is invalid: {e.message}")]
        )

    errors = [
        SchemaViolation(
            path=strip_params_root(_format_path(error.absolute_path)),
            message=error.message,
        )
        for error in raw_errors
    ]
    return SchemaValidationResult(valid=not errors, errors=errors)


def format_schema_failure(errors: List[SchemaViolation]) -> str:
    """
    Build the caller-facing failure message.

    One violation per line; never empty even when no structured errors
    were produced.
    """
    lines = [str(error) for error in errors if str(error)]
    if not lines:
        lines = [UNKNOWN_SCHEMA_ERROR]

    failures = "- " + "\n- ".join(lines)
    return f"{SCHEMA_FAILURE_HEADER}\n\n{failures}\n\n{SCHEMA_FAILURE_FOOTER}"
