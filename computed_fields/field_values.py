#!/usr/bin/env python3
"""
Field Values - Typed view of one line item's data

Line item data arrives as a loose mapping (JSON from the store, raw values
from extraction). At ingestion every value is converted to a tagged
FieldValue whose kind follows the field definition's type, so templates
and persistence never guess at types later.

Templates only ever see the string form (stringify).
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .field_definitions import FieldDefinition

logger = logging.getLogger(__name__)

KIND_STRING = 'string'
KIND_NUMBER = 'number'
KIND_BOOLEAN = 'boolean'

TRUE_VALUES = {'true', 'yes', 'y', '1', 'ja', 'x'}
FALSE_VALUES = {'false', 'no', 'n', '0', 'nein'}


@dataclass(frozen=True)
class FieldValue:
    """A value tagged with its kind"""
    kind: str
    raw: Any

    def stringify(self) -> str:
        """String form used in template contexts"""
        return stringify(self.raw)


def stringify(value: Any) -> str:
    """
    Convert a plain value to its template string form

    None -> '', booleans -> 'true'/'false', integral floats drop '.0'
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a number from supplier text

    Handles currency symbols and both decimal conventions:
    "1.234,56 €" -> 1234.56, "$1,234.56" -> 1234.56, "42" -> 42.0

    Returns:
        Parsed number or None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = re.sub(r'[^0-9,.\-]', '', str(value))
    if not cleaned:
        return None

    last_comma = cleaned.rfind(',')
    last_dot = cleaned.rfind('.')
    if last_comma > last_dot:
        # European format: 1.234,56
        cleaned = cleaned.replace('.', '').replace(',', '.')
    else:
        cleaned = cleaned.replace(',', '')

    match = re.search(r'-?\d+(?:\.\d+)?', cleaned)
    if not match:
        return None
    return float(match.group(0))


def parse_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = stringify(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def to_field_value(value: Any, value_type: str = KIND_STRING) -> FieldValue:
    """
    Convert a raw value to a FieldValue of the configured type.
    Values that cannot be read as the configured type stay strings.
    """
    if value_type == KIND_NUMBER:
        number = parse_number(value)
        if number is not None:
            return FieldValue(KIND_NUMBER, int(number) if number.is_integer() else number)
    elif value_type == KIND_BOOLEAN:
        flag = parse_boolean(value)
        if flag is not None:
            return FieldValue(KIND_BOOLEAN, flag)
    return FieldValue(KIND_STRING, stringify(value))


@dataclass
class LineItemView:
    """One line item as the engine sees it"""
    id: str
    line_number: Optional[int] = None
    values: Dict[str, FieldValue] = field(default_factory=dict)

    def as_strings(self) -> Dict[str, str]:
        """Flat string view for template contexts"""
        return {key: value.stringify() for key, value in self.values.items()}

    def to_plain(self) -> Dict[str, Any]:
        """Plain mapping for persistence"""
        return {key: value.raw for key, value in self.values.items()}

    def with_strings(self, updates: Dict[str, str]) -> 'LineItemView':
        """Copy with string values replacing/adding the given keys"""
        values = dict(self.values)
        for key, value in updates.items():
            values[key] = FieldValue(KIND_STRING, value)
        return LineItemView(id=self.id, line_number=self.line_number, values=values)


def ingest_line_item(
    item_id: Any,
    data: Optional[Dict[str, Any]],
    field_defs: Iterable[FieldDefinition],
    line_number: Optional[int] = None,
) -> LineItemView:
    """
    Conversion boundary: loose line item data -> LineItemView

    Keys with a field definition are converted to that field's type; other
    keys are carried as strings.

    Args:
        item_id: Line item id
        data: Current field values
        field_defs: Field definitions of the active profile
        line_number: 1-based position in the order (optional)

    Returns:
        LineItemView
    """
    types = {definition.key: definition.value_type for definition in field_defs}
    values = {}
    for key, raw in (data or {}).items():
        if key not in types:
            logger.debug(f"Item {item_id}: field '{key}' has no definition, kept as string")
        values[key] = to_field_value(raw, types.get(key, KIND_STRING))
    return LineItemView(id=str(item_id), line_number=line_number, values=values)


def ingest_line_items(records: List[Dict[str, Any]], field_defs: List[FieldDefinition]) -> List[LineItemView]:
    """
    Ingest store records shaped {id, line_number, normalized_data}

    Records without line_number get their 1-based list position.
    """
    items = []
    for position, record in enumerate(records, start=1):
        items.append(ingest_line_item(
            record.get('id', position),
            record.get('normalized_data') or record.get('data') or {},
            field_defs,
            line_number=record.get('line_number') or position,
        ))
    return items
