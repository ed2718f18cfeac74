#!/usr/bin/env python3
"""
Text Utilities
Key normalization and display formatting shared by the catalog index,
the reconciler and the template engine.

- normalize_key: trim + lowercase, the only form used as an index key
- fallback_format: re-titlecase an unmatched raw value ("mIDNIGHT blue" -> "Midnight Blue")
- split_compound_value: split "WHITE/PEARL" or "Pale Rose" into parts
"""

import re
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

# Separators seen in supplier colour/material columns: "WHITE/PEARL", "Black & Gold", "NAVY-RED"
COMPOUND_SEPARATORS = re.compile(r'[\s/,&\-+]+')


def normalize_key(value: Optional[str]) -> str:
    """
    Normalize a value for catalog lookups

    Args:
        value: Raw value (may be None)

    Returns:
        Trimmed, lower-cased string ('' for None)
    """
    if value is None:
        return ''
    return str(value).strip().lower()


def fallback_format(value: Optional[str]) -> str:
    """
    Format an unmatched value for display.
    Each whitespace-delimited token gets an upper-case first character and
    a lower-cased rest; runs of whitespace collapse to one space.

    Idempotent: fallback_format(fallback_format(s)) == fallback_format(s)

    Args:
        value: Raw value

    Returns:
        Title-cased value
    """
    if not value:
        return ''
    tokens = str(value).split()
    return ' '.join(token.capitalize() for token in tokens)


def split_compound_value(value: Optional[str]) -> List[str]:
    """
    Split a compound value into its parts

    Args:
        value: Raw value such as "WHITE/PEARL"

    Returns:
        Non-empty parts in original order
    """
    if not value:
        return []
    parts = [part.strip() for part in COMPOUND_SEPARATORS.split(str(value))]
    return [part for part in parts if part]
