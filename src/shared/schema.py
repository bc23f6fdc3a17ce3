"""JSON Schema validation utilities for tool arguments."""

from typing import Any

from jsonschema import Draft7Validator, SchemaError, ValidationError


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors: list[ValidationError] = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages


def check_tool_schema(schema: dict[str, Any]) -> list[str]:
    """
    Check that a tool parameter schema is usable in a function-calling catalogue.

    Returns:
        List of problems; empty when the schema is acceptable
    """
    problems: list[str] = []

    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        problems.append(f"invalid JSON Schema: {e.message}")
        return problems

    if schema.get("type") != "object":
        problems.append("top-level type must be 'object'")

    properties = schema.get("properties", {})
    for name in schema.get("required", []):
        if name not in properties:
            problems.append(f"required parameter '{name}' is not declared")

    return problems
