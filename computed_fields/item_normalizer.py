#!/usr/bin/env python3
"""
Item Normalizer - Replace extracted values with canonical catalog names

Runs at extraction time, before computed fields are generated: every
extracted field that has a catalog_key is reconciled against its catalog
type and the raw value ("BLK", "Mdngt") is replaced with the canonical
name ("Black", "Midnight"). Unmatched values get fallback formatting.
Blank values are left untouched.

All catalog types are prefetched once for the whole batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from catalog_match.catalog_source import CatalogSource
from catalog_match.reconciler import MatchResult, Reconciler
from catalog_match.text_utils import normalize_key

from .batch_regenerator import ItemUpdate, prefetch_catalog
from .field_definitions import ConfigurationError, FieldDefinition
from .field_values import LineItemView

logger = logging.getLogger(__name__)


@dataclass
class NormalizeResult:
    """Outcome of one normalize_items() call"""
    updates: List[ItemUpdate] = field(default_factory=list)
    matches: Dict[str, Dict[str, MatchResult]] = field(default_factory=dict)
    skipped_items: List[str] = field(default_factory=list)

    def unmatched(self) -> List[Dict[str, str]]:
        """Values that fell back to formatting, for catalog review"""
        rows = []
        for item_id, results in self.matches.items():
            for key, result in results.items():
                if not result.matched:
                    rows.append({'id': item_id, 'field': key, 'value': result.value})
        return rows


def normalize_items(
    items: List[LineItemView],
    field_defs: List[FieldDefinition],
    catalog_source: CatalogSource,
    reconciler: Optional[Reconciler] = None,
    compound: bool = True,
) -> NormalizeResult:
    """
    Reconcile catalog-backed extracted fields for a batch of items

    Args:
        items: Line items with raw extracted values
        field_defs: Field definitions of the active profile
        catalog_source: Catalog source (each type fetched once)
        reconciler: Reconciler to use (default Reconciler())
        compound: Try parts of compound values ("WHITE/PEARL")

    Returns:
        NormalizeResult with per-item updates and per-field MatchResults

    Raises:
        ConfigurationError: no field definitions or the catalog could not be fetched
    """
    if not field_defs:
        raise ConfigurationError("No field definitions configured")

    reconciler = reconciler or Reconciler()
    catalog_fields = [f for f in field_defs if not f.is_computed and f.catalog_key]
    result = NormalizeResult()
    if not catalog_fields:
        logger.info("No extracted fields with a catalog, nothing to normalize")
        result.skipped_items = [item.id for item in items]
        return result

    catalog_types = []
    for definition in catalog_fields:
        if definition.catalog_key not in catalog_types:
            catalog_types.append(definition.catalog_key)

    index = prefetch_catalog(catalog_source, catalog_types)
    try:
        for item in items:
            current = item.as_strings()
            item_matches = {}
            changed = {}
            for definition in catalog_fields:
                raw = current.get(definition.key)
                # Blank supplier data stays blank
                if not normalize_key(raw):
                    continue
                if compound:
                    match = reconciler.reconcile_compound(raw, definition.catalog_key, index)
                else:
                    match = reconciler.reconcile(raw, definition.catalog_key, index)
                item_matches[definition.key] = match
                if match.value != raw:
                    changed[definition.key] = match.value

            result.matches[item.id] = item_matches
            if not changed:
                result.skipped_items.append(item.id)
                continue

            values = item.to_plain()
            values.update(changed)
            result.updates.append(ItemUpdate(
                id=item.id,
                values=values,
                changed_fields=list(changed.keys()),
                flags={'status': 'normalized'},
            ))
    finally:
        index.clear()

    logger.info(
        f"Normalized {len(result.updates)}/{len(items)} items, "
        f"{len(result.unmatched())} values without catalog match"
    )
    return result
