"""JSON Schema validation wrapper."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from jsonschema import Draft202012Validator


@dataclass
class SchemaViolation:
    """Structured validation error for machine-readable error reporting.

    Attributes:
        type: Error category (missing_required, invalid_type, enum_violation, ...).
        message: Human-readable error message.
        path: Dotted path to the invalid field (e.g. "Bucket").
        expected: Expected type or value.
        got: Actual type or value received.
        hint: Actionable suggestion for fixing the error.
    """

    type: str
    message: str
    path: str | None = None
    expected: str | None = None
    got: str | None = None
    hint: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {key: value for key, value in asdict(self).items() if value is not None}


_VALIDATOR_TO_TYPE = {
    "required": "missing_required",
    "type": "invalid_type",
    "enum": "enum_violation",
    "pattern": "pattern_mismatch",
    "minLength": "min_length_violation",
    "maxLength": "max_length_violation",
    "minimum": "minimum_violation",
    "maximum": "maximum_violation",
    "additionalProperties": "additional_property",
    "const": "const_mismatch",
    "minItems": "min_items_violation",
    "maxItems": "max_items_violation",
}


def check_schema(schema: dict[str, object]) -> None:
    """Raise ``jsonschema.SchemaError`` if *schema* itself is invalid."""
    Draft202012Validator.check_schema(schema)


def validate_payload_structured(
    schema: dict[str, object],
    payload: dict[str, object],
) -> list[SchemaViolation]:
    """Validate payload and return structured violations, ordered by path."""
    validator = Draft202012Validator(schema)
    violations: list[SchemaViolation] = []

    errors = sorted(
        validator.iter_errors(payload),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else None
        expected = None
        got = None
        hint = None

        if error.validator == "required":
            missing = error.message.split("'")[1] if "'" in error.message else None
            path = missing or path
            expected = "field to be present"
            hint = f"Add the required field '{missing}' to your request."

        elif error.validator == "type":
            expected = str(error.validator_value)
            got = type(error.instance).__name__ if error.instance is not None else "null"
            hint = f"Change the value to type '{expected}'."

        elif error.validator == "enum":
            allowed = error.validator_value or []
            got = str(error.instance)
            hint = f"Use one of: {', '.join(str(v) for v in allowed)}"

        elif error.validator == "pattern":
            expected = f"pattern: {error.validator_value}"
            got = str(error.instance)

        elif error.validator == "additionalProperties":
            hint = "Remove the unexpected property or check for typos."

        violations.append(
            SchemaViolation(
                type=_VALIDATOR_TO_TYPE.get(error.validator, "validation_error"),
                message=error.message,
                path=path,
                expected=expected,
                got=got,
                hint=hint,
            )
        )

    return violations
