"""
Catalog Matching
Reconciles noisy extracted values ("BLK", "Mdngt") against canonical
catalog entries (names, aliases, codes, auxiliary data).
"""

from .catalog_index import CatalogEntry, CatalogIndex, KeyMatch
from .catalog_source import (
    CatalogSource,
    InMemoryCatalogSource,
    YamlCatalogSource,
    SpreadsheetCatalogSource,
    PostgresCatalogSource,
)
from .reconciler import MatchAttempt, MatchResult, Reconciler, reconcile, test_reconciliation
from .text_utils import normalize_key, fallback_format, split_compound_value

__all__ = [
    'CatalogEntry',
    'CatalogIndex',
    'KeyMatch',
    'CatalogSource',
    'InMemoryCatalogSource',
    'YamlCatalogSource',
    'SpreadsheetCatalogSource',
    'PostgresCatalogSource',
    'MatchAttempt',
    'MatchResult',
    'Reconciler',
    'reconcile',
    'test_reconciliation',
    'normalize_key',
    'fallback_format',
    'split_compound_value',
]
