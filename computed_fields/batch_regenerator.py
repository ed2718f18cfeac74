#!/usr/bin/env python3
"""
Batch Regenerator - Recompute computed fields for a set of line items

Steps:
1. Pick the computed fields in scope (template + AI enrichment), optionally
   restricted to the requested field keys
2. Collect every catalog type those fields reference (plus the profile's
   catalog types when AI fields in scope want a catalog guide) and prefetch
   each type exactly once, whatever the number of items
3. Build one CatalogIndex for the batch
4. Per item: evaluate templates in field order (later templates see earlier
   results), then hand AI fields to the enricher
5. Merge results per item; items without changes are left out
6. Return updates + attempted field keys for the caller to persist

A failing field never stops the other fields or items: it is logged,
recorded as a FieldFailure, and the item keeps its prior value.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from catalog_match.catalog_index import CatalogIndex
from catalog_match.catalog_source import CatalogSource

from .ai_enrichment import Enricher, EnrichmentField, EnrichmentItem, fallback_values
from .field_definitions import (
    ConfigurationError,
    FieldDefinition,
    TemplateLogic,
    match_logic,
)
from .field_values import LineItemView, stringify
from .template_engine import TemplateContext, TemplateEngine, lookup_fields

logger = logging.getLogger(__name__)


@dataclass
class FieldFailure:
    """A field that could not be (re)generated for one item"""
    item_id: str
    field_key: str
    error: str


@dataclass
class ItemUpdate:
    """Update record for one line item"""
    id: str
    values: Dict[str, Any]
    changed_fields: List[str] = field(default_factory=list)
    flags: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RegenerateResult:
    """Outcome of one regenerate() call"""
    updates: List[ItemUpdate] = field(default_factory=list)
    fields_attempted: List[str] = field(default_factory=list)
    skipped_items: List[str] = field(default_factory=list)
    failures: List[FieldFailure] = field(default_factory=list)

    @property
    def regenerated_count(self) -> int:
        return len(self.updates)

    def summary(self) -> Dict[str, Any]:
        return {
            'regenerated_count': self.regenerated_count,
            'skipped_count': len(self.skipped_items),
            'failed_fields': len(self.failures),
            'fields_attempted': list(self.fields_attempted),
        }


def select_computed_fields(
    field_defs: List[FieldDefinition],
    field_keys: Optional[List[str]] = None,
) -> Tuple[List[FieldDefinition], List[FieldDefinition]]:
    """
    Split the profile into template fields and AI enrichment fields in scope

    Args:
        field_defs: All field definitions of the profile
        field_keys: Optional restriction to these keys

    Returns:
        (template_fields, ai_fields)
    """
    template_fields = []
    ai_fields = []
    for definition in field_defs:
        if not definition.is_computed:
            continue
        match_logic(
            definition.logic,
            on_template=lambda logic: template_fields.append(definition),
            on_ai_enrichment=lambda logic: ai_fields.append(definition),
            on_none=lambda logic: None,
        )

    if field_keys:
        wanted = set(field_keys)
        template_fields = [f for f in template_fields if f.key in wanted]
        ai_fields = [f for f in ai_fields if f.key in wanted]

    return template_fields, ai_fields


def build_lookup_type_mapping(field_defs: List[FieldDefinition]) -> Dict[str, str]:
    """field key -> catalog type for every field with a catalog_key"""
    return {f.key: f.catalog_key for f in field_defs if f.catalog_key}


def referenced_catalog_types(
    fields_in_scope: List[FieldDefinition],
    lookup_type_mapping: Dict[str, str],
) -> List[str]:
    """
    Distinct catalog types the fields in scope need, in first-use order

    Includes the catalog types of the fields a template looks up through
    .code/.<column>, and the computed fields' own catalog_key.
    """
    types: List[str] = []
    for definition in fields_in_scope:
        candidates = []
        if isinstance(definition.logic, TemplateLogic):
            candidates.extend(
                lookup_type_mapping[name] for name in lookup_fields(definition.logic.template)
                if name in lookup_type_mapping
            )
        if definition.catalog_key:
            candidates.append(definition.catalog_key)
        for catalog_type in candidates:
            if catalog_type not in types:
                types.append(catalog_type)
    return types


def prefetch_catalog(catalog_source: CatalogSource, catalog_types: List[str]) -> CatalogIndex:
    """
    Fetch each catalog type once and build the batch index

    Raises:
        ConfigurationError: the catalog source could not be read
    """
    entries_by_type = {}
    for catalog_type in catalog_types:
        try:
            fetched = catalog_source.fetch_catalog_entries([catalog_type])
        except Exception as e:
            raise ConfigurationError(f"Catalog '{catalog_type}' could not be fetched: {e}") from e
        entries_by_type.update(fetched)
        if catalog_type not in fetched:
            logger.warning(f"Catalog '{catalog_type}' has no entries, lookups will resolve to ''")

    index = CatalogIndex.build(entries_by_type)
    logger.info(f"Prefetched {len(index)} catalog entries for {len(catalog_types)} catalog types")
    return index


class BatchRegenerator:
    """Regenerate template and AI enrichment fields for many line items"""

    def __init__(
        self,
        catalog_source: CatalogSource,
        enricher: Optional[Enricher] = None,
        template_engine: Optional[TemplateEngine] = None,
        max_workers: int = 1,
    ):
        """
        Args:
            catalog_source: Where catalog entries are fetched from
            enricher: AI enrichment capability (None skips AI fields)
            template_engine: Template engine (default TemplateEngine())
            max_workers: Thread pool size for per-item template work (1 = sequential)
        """
        self.catalog_source = catalog_source
        self.enricher = enricher
        self.template_engine = template_engine or TemplateEngine()
        self.max_workers = max(1, max_workers)

    def regenerate(
        self,
        items: List[LineItemView],
        field_defs: List[FieldDefinition],
        field_keys: Optional[List[str]] = None,
    ) -> RegenerateResult:
        """
        Regenerate computed fields for the given items

        Args:
            items: Line items with their current values
            field_defs: Field definitions of the active profile
            field_keys: Optional: only regenerate these fields

        Returns:
            RegenerateResult

        Raises:
            ConfigurationError: no field definitions, no computed fields in scope,
                or the catalog could not be fetched
        """
        if not field_defs:
            raise ConfigurationError("No field definitions configured")

        template_fields, ai_fields = select_computed_fields(field_defs, field_keys)
        if not template_fields and not ai_fields:
            raise ConfigurationError("No computed fields in profile")

        fields_attempted = [f.key for f in template_fields] + [f.key for f in ai_fields]
        lookup_type_mapping = build_lookup_type_mapping(field_defs)
        catalog_types = referenced_catalog_types(template_fields + ai_fields, lookup_type_mapping)

        # The enricher's catalog guide comes from this batch's index
        guide_types: List[str] = []
        if ai_fields and self.enricher is not None and self.enricher.include_catalog_guide:
            guide_types = list(dict.fromkeys(lookup_type_mapping.values()))
            catalog_types = catalog_types + [t for t in guide_types if t not in catalog_types]

        index = prefetch_catalog(self.catalog_source, catalog_types)
        try:
            code_lookups = index.code_lookups()
            aux_lookups = index.auxiliary_lookups()

            jobs = list(enumerate(items, start=1))

            def _run(job):
                position, item = job
                return self._evaluate_templates(
                    item, position, template_fields, lookup_type_mapping, code_lookups, aux_lookups
                )

            if self.max_workers > 1 and len(jobs) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    template_results = list(executor.map(_run, jobs))
            else:
                template_results = [_run(job) for job in jobs]

            failures: List[FieldFailure] = []
            generated: List[Dict[str, str]] = []
            for updates, item_failures in template_results:
                generated.append(updates)
                failures.extend(item_failures)

            ai_applied = [False] * len(items)
            if ai_fields:
                guide = index.match_guide(guide_types) if guide_types else ''
                ai_applied = self._apply_enrichment(items, ai_fields, generated, failures, guide)

            result = RegenerateResult(fields_attempted=fields_attempted, failures=failures)
            for item, updates, used_ai in zip(items, generated, ai_applied):
                update = self._build_update(item, updates, used_ai)
                if update is None:
                    result.skipped_items.append(item.id)
                else:
                    result.updates.append(update)
        finally:
            index.clear()

        logger.info(
            f"Regenerated {result.regenerated_count}/{len(items)} items "
            f"({len(result.failures)} field failures, fields: {', '.join(fields_attempted)})"
        )
        return result

    def _evaluate_templates(
        self,
        item: LineItemView,
        position: int,
        template_fields: List[FieldDefinition],
        lookup_type_mapping: Dict[str, str],
        code_lookups: Dict[str, Dict[str, str]],
        aux_lookups: Dict[str, Dict[str, Dict[str, Any]]],
    ) -> Tuple[Dict[str, str], List[FieldFailure]]:
        """Evaluate every template field for one item"""
        context = TemplateContext(
            values=item.as_strings(),
            sequence=item.line_number or position,
            lookup_type_mapping=lookup_type_mapping,
        )
        updates: Dict[str, str] = {}
        failures: List[FieldFailure] = []

        for definition in template_fields:
            try:
                value = self.template_engine.evaluate(
                    definition.logic.template, context, code_lookups, aux_lookups
                )
            except Exception as e:
                logger.error(f"Failed to evaluate template for {definition.key} on item {item.id}: {e}")
                failures.append(FieldFailure(item.id, definition.key, str(e)))
                continue
            updates[definition.key] = value
            context.values[definition.key] = value

        return updates, failures

    def _apply_enrichment(
        self,
        items: List[LineItemView],
        ai_fields: List[FieldDefinition],
        generated: List[Dict[str, str]],
        failures: List[FieldFailure],
        catalog_guide: str = '',
    ) -> List[bool]:
        """
        Run AI enrichment for all items and merge into the generated updates

        Returns:
            Per item: whether model-generated (non-fallback) values were applied
        """
        if self.enricher is None:
            logger.warning("AI enrichment not configured, skipping AI enrichment fields")
            return [False] * len(items)

        if self.enricher.include_catalog_guide:
            self.enricher.set_catalog_guide(catalog_guide)

        enrichment_fields = [
            match_logic(
                f.logic,
                on_template=lambda logic: None,
                on_ai_enrichment=lambda logic, f=f: EnrichmentField(f.key, f.label, logic.prompt, logic.fallback),
                on_none=lambda logic: None,
            )
            for f in ai_fields
        ]
        enrichment_fields = [f for f in enrichment_fields if f is not None]
        enrichment_items = [
            EnrichmentItem(id=item.id, data={**item.as_strings(), **updates})
            for item, updates in zip(items, generated)
        ]

        try:
            results = self.enricher.enrich(enrichment_fields, enrichment_items)
        except Exception as e:
            logger.error(f"AI enrichment batch failed, using fallback values: {e}")
            results = []
            for item in items:
                failures.extend(FieldFailure(item.id, f.key, str(e)) for f in enrichment_fields)

        by_id = {result.id: result for result in results}
        applied = []
        for item, updates in zip(items, generated):
            result = by_id.get(item.id)
            values = result.values if result is not None else fallback_values(enrichment_fields)
            for f in enrichment_fields:
                updates[f.key] = stringify(values.get(f.key)) or f.fallback or ''
            # A partial fallback still carries model output for the other fields
            applied.append(result is not None and (
                not result.used_fallback
                or any(stringify(values.get(f.key)) not in ('', f.fallback or '') for f in enrichment_fields)
            ))

        return applied

    def _build_update(self, item: LineItemView, updates: Dict[str, str], used_ai: bool) -> Optional[ItemUpdate]:
        current = item.as_strings()
        changed = [key for key, value in updates.items() if key not in current or current[key] != value]
        if not changed:
            return None

        values = item.to_plain()
        for key in changed:
            values[key] = updates[key]

        flags = {'user_modified': True, 'status': 'validated'}
        if used_ai:
            flags['non_deterministic'] = True
        return ItemUpdate(id=item.id, values=values, changed_fields=changed, flags=flags)


def regenerate(
    items: List[LineItemView],
    field_defs: List[FieldDefinition],
    catalog_source: CatalogSource,
    field_keys: Optional[List[str]] = None,
    enricher: Optional[Enricher] = None,
) -> RegenerateResult:
    """Regenerate with a default BatchRegenerator"""
    return BatchRegenerator(catalog_source, enricher=enricher).regenerate(items, field_defs, field_keys)
