#!/usr/bin/env python3
"""
Template Engine - Evaluate computed-field templates

Template syntax:
    {field}            value of the field on the line item
    {field.code}       catalog code of the field's value
    {field.<column>}   auxiliary catalog column of the field's value (e.g. {brand.xentral_code})
    {sequence}         1-based position of the item in the order
    {...:N}            length modifier: digits are zero-padded to N,
                       text is cut/padded with 'X' to N and upper-cased

Examples:
    {brand.code}-{colour.code:2}-{sequence:4}   ->  ACM-01-0007
    {brand} - {name}                            ->  Acme - Widget

Catalog lookups go through lookup_type_mapping (field key -> catalog type)
into pre-resolved maps built from the batch CatalogIndex. Anything that
cannot be resolved becomes ''. Evaluation is pure: same template, context
and maps always give the same string.
"""

import re
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from catalog_match.text_utils import normalize_key

from .field_values import stringify

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(
    r'\{([a-zA-Z_][a-zA-Z0-9_]*)(?:\.([a-zA-Z_][a-zA-Z0-9_]*))?(?::(\d+))?\}'
)
DIGITS_ONLY = re.compile(r'[0-9]+')

SEQUENCE_TOKEN = 'sequence'
CODE_KEY = 'code'
PAD_CHAR = 'X'

CodeLookups = Dict[str, Dict[str, str]]
AuxLookups = Dict[str, Dict[str, Dict[str, Any]]]


@dataclass(frozen=True)
class TemplateVariable:
    """A parsed {placeholder}"""
    name: str
    lookup_key: Optional[str] = None
    modifier: Optional[int] = None

    @property
    def uses_code(self) -> bool:
        return self.lookup_key == CODE_KEY

    @property
    def uses_catalog(self) -> bool:
        return self.lookup_key is not None


Segment = Union[str, TemplateVariable]


@dataclass
class TemplateContext:
    """Values available to one template evaluation"""
    values: Dict[str, str] = field(default_factory=dict)
    sequence: int = 1
    lookup_type_mapping: Dict[str, str] = field(default_factory=dict)


@lru_cache(maxsize=512)
def parse_template(template: str) -> Tuple[Segment, ...]:
    """
    Split a template into literal text and variables

    Args:
        template: Template string

    Returns:
        Tuple of segments (str for literal text, TemplateVariable for placeholders)
    """
    segments: List[Segment] = []
    last_index = 0
    for match in PLACEHOLDER_PATTERN.finditer(template or ''):
        if match.start() > last_index:
            segments.append(template[last_index:match.start()])
        segments.append(TemplateVariable(
            name=match.group(1),
            lookup_key=match.group(2),
            modifier=int(match.group(3)) if match.group(3) else None,
        ))
        last_index = match.end()
    if template and last_index < len(template):
        segments.append(template[last_index:])
    return tuple(segments)


def referenced_fields(template: str) -> List[str]:
    """Field keys a template reads (sequence excluded), in first-use order"""
    names = []
    for segment in parse_template(template):
        if isinstance(segment, TemplateVariable) and segment.name != SEQUENCE_TOKEN and segment.name not in names:
            names.append(segment.name)
    return names


def lookup_fields(template: str) -> List[str]:
    """Field keys a template resolves through the catalog (.code / .<column>)"""
    names = []
    for segment in parse_template(template):
        if isinstance(segment, TemplateVariable) and segment.uses_catalog and segment.name not in names:
            names.append(segment.name)
    return names


def _catalog_lookup(type_map: Optional[Dict[str, Any]], raw_value: str) -> Optional[Any]:
    """
    Find a value in one catalog type's map.
    Exact normalized key first, then the first key (map order) that contains
    or is contained by the value.
    """
    if not type_map:
        return None
    key = normalize_key(raw_value)
    if not key:
        return None
    if key in type_map:
        return type_map[key]
    for candidate, value in type_map.items():
        if candidate and (candidate in key or key in candidate):
            return value
    return None


def apply_modifier(value: str, modifier: Optional[int]) -> str:
    """
    Apply the :N length modifier

    '7' with 3 -> '007'; 'Navy' with 2 -> 'NA'; 'Go' with 3 -> 'GOX'.
    Empty values are left empty.
    """
    if not modifier or not value:
        return value
    if DIGITS_ONLY.fullmatch(value):
        return value.rjust(modifier, '0')
    return value[:modifier].ljust(modifier, PAD_CHAR).upper()


class TemplateEngine:
    """Evaluates templates against a TemplateContext"""

    def resolve_variable(
        self,
        variable: TemplateVariable,
        context: TemplateContext,
        code_lookups: Optional[CodeLookups] = None,
        aux_lookups: Optional[AuxLookups] = None,
    ) -> str:
        """
        Resolve one placeholder to its string value

        Args:
            variable: Parsed placeholder
            context: Item values, sequence and field -> catalog type mapping
            code_lookups: catalog type -> normalized name -> code
            aux_lookups: catalog type -> normalized name -> auxiliary data

        Returns:
            Resolved value ('' when unresolvable)
        """
        if variable.name == SEQUENCE_TOKEN and not variable.uses_catalog:
            value = str(context.sequence)
        else:
            raw_value = context.values.get(variable.name) or ''
            if not variable.uses_catalog:
                value = raw_value
            else:
                catalog_type = context.lookup_type_mapping.get(variable.name)
                if not catalog_type or not raw_value:
                    value = ''
                elif variable.uses_code:
                    code = _catalog_lookup((code_lookups or {}).get(catalog_type), raw_value)
                    value = stringify(code)
                else:
                    auxiliary = _catalog_lookup((aux_lookups or {}).get(catalog_type), raw_value) or {}
                    value = stringify(auxiliary.get(variable.lookup_key))

        return apply_modifier(value, variable.modifier)

    def evaluate(
        self,
        template: str,
        context: TemplateContext,
        code_lookups: Optional[CodeLookups] = None,
        aux_lookups: Optional[AuxLookups] = None,
    ) -> str:
        """
        Evaluate a template

        Args:
            template: Template string
            context: Template context
            code_lookups: Pre-resolved code maps (from CatalogIndex.code_lookups())
            aux_lookups: Pre-resolved auxiliary maps (from CatalogIndex.auxiliary_lookups())

        Returns:
            Evaluated string
        """
        parts = []
        for segment in parse_template(template):
            if isinstance(segment, str):
                parts.append(segment)
            else:
                parts.append(self.resolve_variable(segment, context, code_lookups, aux_lookups))
        return ''.join(parts)


def evaluate(
    template: str,
    context: TemplateContext,
    code_lookups: Optional[CodeLookups] = None,
    aux_lookups: Optional[AuxLookups] = None,
) -> str:
    """Evaluate with a default TemplateEngine"""
    return TemplateEngine().evaluate(template, context, code_lookups, aux_lookups)
