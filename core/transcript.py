"""Plain-text extraction from transcription result payloads."""

import json
from typing import Any, Iterator

DISPLAY_FIELD = "Display"


def extract_display_text(
    payload: str | bytes, field: str = DISPLAY_FIELD, separator: str = " "
) -> str:
    """Join every value stored under `field`, in document order.

    The field is matched at any depth. Null values are skipped; objects and
    arrays stored under the field are searched rather than emitted.

    Args:
        payload: Raw JSON result document
        field: Property name to collect
        separator: Text placed between collected values

    Returns:
        The concatenated transcript

    Raises:
        ValueError: If the payload is not valid JSON
    """
    try:
        document = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Result payload is not valid JSON: {e}") from e

    return separator.join(_iter_field_values(document, field))


def _iter_field_values(node: Any, field: str) -> Iterator[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == field and not isinstance(value, (dict, list)):
                if value is None:
                    continue
                yield value if isinstance(value, str) else json.dumps(value)
            else:
                yield from _iter_field_values(value, field)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_field_values(item, field)
