"""Value coercion helpers for transformers and destination writes."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


def safe_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def safe_integer(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(Decimal(str(value)))
    except (ArithmeticError, ValueError):
        return None


def safe_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return str(value).strip().upper() in ("1", "Y", "YES", "T", "TRUE", "ACTIVE")


def convert_value(value: Any) -> Any:
    """Convert a driver value to its JSON-compatible form."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


def convert_data_types(data: List[Dict[str, Any]], lowercase_keys: bool = False) -> List[Dict[str, Any]]:
    """Convert source rows to a JSON-compatible format for the destination."""
    converted = []

    for record in data:
        converted_record = {}
        for key, value in record.items():
            new_key = key.lower() if lowercase_keys else key
            converted_record[new_key] = convert_value(value)
        converted.append(converted_record)

    return converted
