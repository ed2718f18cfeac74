#!/usr/bin/env python3
"""
Reconciler - Match a raw extracted value against one catalog type

Cascade (first hit wins):
1. Empty / whitespace-only input -> fallback default ("Unknown")
2. Exact canonical name (case-insensitive)           -> method 'exact'
3. Alias (case-insensitive)                           -> method 'alias'
4. Containment, either direction, in catalog order    -> method 'fuzzy'
   (per entry: canonical name first, then its aliases)
5. No match -> input re-titlecased                    -> method 'fallback'

Containment runs only after exact and alias lookups fail, so "Navy" never
steals an input that is literally "Navy Blue" when "Navy Blue" exists.
When two entries both contain each other's text the first one in catalog
iteration order wins.

Debug mode records every rejected comparison in MatchResult.trace without
changing the selected result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .catalog_index import CatalogEntry, CatalogIndex, KeyMatch
from .catalog_source import CatalogSource
from .text_utils import fallback_format, normalize_key, split_compound_value

logger = logging.getLogger(__name__)

METHOD_EXACT = 'exact'
METHOD_ALIAS = 'alias'
METHOD_FUZZY = 'fuzzy'
METHOD_FALLBACK = 'fallback'

DEFAULT_EMPTY_VALUE = 'Unknown'


@dataclass
class MatchAttempt:
    """One comparison made while reconciling (debug trace)"""
    stage: str
    candidate: str
    entry: str
    outcome: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'stage': self.stage,
            'candidate': self.candidate,
            'entry': self.entry,
            'outcome': self.outcome,
        }


@dataclass
class MatchResult:
    """Outcome of one reconciliation call"""
    matched: bool
    value: str
    method: str
    code: Optional[str] = None
    matched_on: Optional[str] = None
    auxiliary_data: Dict[str, Any] = field(default_factory=dict)
    trace: Optional[List[MatchAttempt]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'matched': self.matched,
            'value': self.value,
            'method': self.method,
            'code': self.code,
            'matched_on': self.matched_on,
            'auxiliary_data': dict(self.auxiliary_data),
        }
        if self.trace is not None:
            result['trace'] = [attempt.to_dict() for attempt in self.trace]
        return result


def _matched(entry: CatalogEntry, method: str, matched_on: str, trace: Optional[List[MatchAttempt]]) -> MatchResult:
    return MatchResult(
        matched=True,
        value=entry.canonical_name,
        method=method,
        code=entry.code,
        matched_on=matched_on,
        auxiliary_data=dict(entry.auxiliary_data or {}),
        trace=trace,
    )


def _trace_key_stages(trace: List[MatchAttempt], entries: List[CatalogEntry], hit: Optional[KeyMatch]) -> None:
    """Record the exact/alias comparisons rejected before the lookup result"""
    for entry in entries:
        if hit is not None and hit.is_canonical and entry is hit.entry:
            return
        trace.append(MatchAttempt(METHOD_EXACT, entry.canonical_name, entry.canonical_name, 'not equal'))
    for entry in entries:
        for alias in entry.aliases:
            if hit is not None and entry is hit.entry and alias == hit.matched_on:
                return
            trace.append(MatchAttempt(METHOD_ALIAS, alias, entry.canonical_name, 'not equal'))


class Reconciler:
    """Catalog-matching cascade"""

    def __init__(self, empty_value: str = DEFAULT_EMPTY_VALUE):
        """
        Args:
            empty_value: Value returned for empty/whitespace-only input
        """
        self.empty_value = empty_value

    def _resolve_index(self, catalog_type: str, index_or_source: Union[CatalogIndex, CatalogSource]) -> CatalogIndex:
        if isinstance(index_or_source, CatalogIndex):
            return index_or_source
        # Non-batch mode: private index for this one call
        return CatalogIndex.build(index_or_source.fetch_catalog_entries([catalog_type]))

    def reconcile(
        self,
        raw_value: Optional[str],
        catalog_type: str,
        index_or_source: Union[CatalogIndex, CatalogSource],
        debug: bool = False,
    ) -> MatchResult:
        """
        Reconcile a raw value against a catalog type

        Args:
            raw_value: Raw extracted value (e.g. "BLK", "Mdngt")
            catalog_type: Catalog type to match against (e.g. "colour")
            index_or_source: Batch CatalogIndex, or a CatalogSource for one-off lookups
            debug: Collect the trace of rejected comparisons

        Returns:
            MatchResult (never raises for a miss)
        """
        trace: Optional[List[MatchAttempt]] = [] if debug else None

        normalized = normalize_key(raw_value)
        if not normalized:
            return MatchResult(matched=False, value=self.empty_value, method=METHOD_FALLBACK, trace=trace)

        index = self._resolve_index(catalog_type, index_or_source)

        # Stages 2 + 3: exact canonical, then alias (one index lookup)
        hit = index.match_for(catalog_type, normalized)
        if trace is not None:
            _trace_key_stages(trace, index.entries_for(catalog_type), hit)
        if hit is not None:
            return _matched(hit.entry, METHOD_EXACT if hit.is_canonical else METHOD_ALIAS, hit.matched_on, trace)

        entries = index.entries_for(catalog_type)
        if not entries:
            logger.debug(f"No catalog entries for type '{catalog_type}'")

        # Stage 4: containment, catalog order decides ties
        for entry in entries:
            for candidate in [entry.canonical_name] + list(entry.aliases):
                candidate_key = normalize_key(candidate)
                if candidate_key and (candidate_key in normalized or normalized in candidate_key):
                    logger.debug(f"Fuzzy match: '{raw_value}' -> '{entry.canonical_name}' (via '{candidate}')")
                    return _matched(entry, METHOD_FUZZY, candidate, trace)
                if trace is not None:
                    trace.append(MatchAttempt(METHOD_FUZZY, candidate, entry.canonical_name, 'no containment'))

        # Stage 5: fallback formatting
        return MatchResult(
            matched=False,
            value=fallback_format(raw_value),
            method=METHOD_FALLBACK,
            trace=trace,
        )

    def reconcile_compound(
        self,
        raw_value: Optional[str],
        catalog_type: str,
        index_or_source: Union[CatalogIndex, CatalogSource],
        debug: bool = False,
    ) -> MatchResult:
        """
        Reconcile a compound value such as "WHITE/PEARL"

        The whole value goes through the exact and alias stages first. If
        neither hits, each part is tried against exact/alias only and the
        first part that matches wins. Otherwise the full cascade result for
        the whole value is returned.

        Args:
            raw_value: Raw value, possibly several values joined by separators
            catalog_type: Catalog type
            index_or_source: CatalogIndex or CatalogSource
            debug: Collect trace

        Returns:
            MatchResult
        """
        index = self._resolve_index(catalog_type, index_or_source)
        whole = self.reconcile(raw_value, catalog_type, index, debug=debug)
        if whole.method in (METHOD_EXACT, METHOD_ALIAS):
            return whole

        parts = split_compound_value(raw_value)
        if len(parts) > 1:
            for part in parts:
                part_result = self.reconcile(part, catalog_type, index, debug=False)
                if part_result.method in (METHOD_EXACT, METHOD_ALIAS):
                    part_result.trace = whole.trace
                    logger.debug(f"Compound match: '{raw_value}' -> '{part_result.value}' (part '{part}')")
                    return part_result

        return whole


def reconcile(
    raw_value: Optional[str],
    catalog_type: str,
    index_or_source: Union[CatalogIndex, CatalogSource],
    debug: bool = False,
) -> MatchResult:
    """Reconcile with the default empty value"""
    return Reconciler().reconcile(raw_value, catalog_type, index_or_source, debug=debug)


def test_reconciliation(value: Optional[str], catalog_type: str, index_or_source: Union[CatalogIndex, CatalogSource]) -> MatchResult:
    """
    Diagnostic entry point for catalog-tuning tools

    Runs the cascade with debug on so the caller can show why a value
    did or did not match.
    """
    result = Reconciler().reconcile(value, catalog_type, index_or_source, debug=True)
    logger.info(
        f"Reconciliation test: '{value}' in '{catalog_type}' -> '{result.value}' "
        f"({result.method}, {len(result.trace or [])} comparisons rejected)"
    )
    return result


# Not a pytest test function
test_reconciliation.__test__ = False
