"""
Computed Fields
Field definitions, typed line item values, template evaluation, AI
enrichment and batch regeneration of computed fields.
"""

from .field_definitions import (
    NormalizerError,
    ConfigurationError,
    EvaluationFailure,
    PersistenceFailure,
    TemplateLogic,
    AIEnrichmentLogic,
    NoLogic,
    FieldDefinition,
    ProfileLoader,
    match_logic,
    parse_field_definitions,
)
from .field_values import FieldValue, LineItemView, ingest_line_item, ingest_line_items, stringify
from .template_engine import TemplateContext, TemplateEngine, evaluate, parse_template
from .ai_enrichment import Enricher, OllamaEnricher, EnrichmentField, EnrichmentItem, EnrichmentResult
from .batch_regenerator import BatchRegenerator, FieldFailure, ItemUpdate, RegenerateResult, regenerate
from .item_normalizer import NormalizeResult, normalize_items
from .line_item_store import JsonLineItemStore, PersistResult

__all__ = [
    'NormalizerError', 'ConfigurationError', 'EvaluationFailure', 'PersistenceFailure',
    'TemplateLogic', 'AIEnrichmentLogic', 'NoLogic', 'FieldDefinition', 'ProfileLoader',
    'match_logic', 'parse_field_definitions',
    'FieldValue', 'LineItemView', 'ingest_line_item', 'ingest_line_items', 'stringify',
    'TemplateContext', 'TemplateEngine', 'evaluate', 'parse_template',
    'Enricher', 'OllamaEnricher', 'EnrichmentField', 'EnrichmentItem', 'EnrichmentResult',
    'BatchRegenerator', 'FieldFailure', 'ItemUpdate', 'RegenerateResult', 'regenerate',
    'NormalizeResult', 'normalize_items',
    'JsonLineItemStore', 'PersistResult',
]
