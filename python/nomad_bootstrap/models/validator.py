"""
nomad_bootstrap/models/validator.py

Validation helpers built on pydantic's TypeAdapter, used wherever untyped
data (JSON from the metadata service, rendered documents) re-enters the
typed world.
"""

from typing import Any, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")


def validate_type(obj: Any, expected_type: Type[T]) -> T:
    """
    Validates a Python object against a pydantic-compatible type.

    Args:
        obj (Any): The object to validate.
        expected_type (Type[T]): The type to validate against.

    Returns:
        T: The validated object.

    Raises:
        ValueError: If validation fails.
    """
    try:
        return TypeAdapter(expected_type).validate_python(obj)
    except ValidationError as e:
        raise ValueError(f"Validation failed for type {expected_type}: {e}") from e


def validate_json(text: str, expected_type: Type[T]) -> T:
    """
    Parses JSON text and validates the result against `expected_type`.

    Raises:
        ValueError: If the text is not valid JSON or does not match the type.
    """
    try:
        return TypeAdapter(expected_type).validate_json(text)
    except ValidationError as e:
        raise ValueError(f"Invalid JSON for type {expected_type}: {e}") from e
