"""Shared helpers for normalizing vendor vocabularies and raw records."""

from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError

from core.errors import ValidationFailure

T = TypeVar("T")

# Canonical product categories
COFFEE = "coffee"
BAKERY = "bakery"
PASTRY = "pastry"
BEVERAGES = "beverages"
FOOD = "food"
DESSERTS = "desserts"
RETAIL = "retail"


def normalize_term(value: Optional[str], table: Dict[str, str], fallback: str) -> str:
    """Look up a vendor term (case/whitespace-insensitive) in a fixed table."""
    if not value:
        return fallback
    return table.get(value.strip().lower(), fallback)


def describe_validation_error(error: ValidationError) -> List[str]:
    """Flatten a pydantic error into "field.path: message" strings."""
    messages = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{loc}: {item.get('msg')}" if loc else item.get("msg", ""))
    return messages


def map_records(
    provider: str,
    records: List[Any],
    id_field: str,
    map_one: Callable[[Dict[str, Any]], T],
) -> List[T]:
    """Apply ``map_one`` to every record, converting failures to ValidationFailure.

    Never drops a record: the result has exactly ``len(records)`` items or
    the call raises, naming the record that could not be mapped.
    """
    results: List[T] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValidationFailure(
                f"{provider} record #{index} is not an object",
                index=index,
            )
        record_id = record.get(id_field)
        try:
            results.append(map_one(record))
        except ValidationError as e:
            errors = describe_validation_error(e)
            raise ValidationFailure(
                f"{provider} sale {record_id or f'#{index}'} could not be mapped: {'; '.join(errors)}",
                record_id=str(record_id) if record_id is not None else None,
                index=index,
                errors=errors,
            ) from e
        except (ValueError, TypeError, ArithmeticError) as e:
            raise ValidationFailure(
                f"{provider} sale {record_id or f'#{index}'} could not be mapped: {e}",
                record_id=str(record_id) if record_id is not None else None,
                index=index,
                errors=[str(e)],
            ) from e
    return results
