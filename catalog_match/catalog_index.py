#!/usr/bin/env python3
"""
Catalog Index - Batch-scoped, in-memory snapshot of catalog entries

Built once per batch operation from the entries a CatalogSource returns,
then passed by reference to the reconciler and the template engine.
Never shared between batches and never persisted.

Per catalog type the index keeps:
- the ordered entry list (containment scan and tie-break order)
- normalized name/alias -> KeyMatch (entry, matched text, canonical or alias)

Canonical names are inserted before aliases, and an alias never overwrites
a key that is already present. Codes, auxiliary data and the reconciler's
exact/alias stages all read the same KeyMatch map.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .text_utils import normalize_key

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    """One allowed value for a catalog type (a colour, a brand, ...)"""
    type: str
    canonical_name: str
    code: str
    aliases: List[str] = field(default_factory=list)
    auxiliary_data: Optional[Dict[str, Any]] = None
    sort_order: int = 0

    @classmethod
    def from_dict(cls, catalog_type: str, data: Dict[str, Any]) -> 'CatalogEntry':
        """
        Build an entry from a loosely-typed record (YAML row, DB row, sheet row)

        Accepts both the canonical field names and the short ones used in
        catalog files ('name', 'extra_data').

        Args:
            catalog_type: Catalog type the entry belongs to
            data: Record with name/code/aliases/extra data

        Returns:
            CatalogEntry
        """
        name = data.get('canonical_name', data.get('name')) or ''
        aliases = data.get('aliases') or []
        if isinstance(aliases, str):
            aliases = [a for a in (part.strip() for part in aliases.split(',')) if a]
        auxiliary = data.get('auxiliary_data', data.get('extra_data'))
        return cls(
            type=catalog_type,
            canonical_name=str(name),
            code=str(data.get('code') or ''),
            aliases=[str(a) for a in aliases if a is not None],
            auxiliary_data=dict(auxiliary) if auxiliary else None,
            sort_order=int(data.get('sort_order') or 0),
        )


@dataclass(frozen=True)
class KeyMatch:
    """Entry claimed by a normalized key"""
    entry: CatalogEntry
    matched_on: str
    is_canonical: bool


class CatalogIndex:
    """Lookup maps for one batch, partitioned by catalog type"""

    def __init__(self):
        self._entries: Dict[str, List[CatalogEntry]] = {}
        self._matches: Dict[str, Dict[str, KeyMatch]] = {}
        self._canonical_keys: Dict[str, set] = {}

    @classmethod
    def build(cls, entries_by_type: Dict[str, Iterable[CatalogEntry]]) -> 'CatalogIndex':
        """
        Build an index from prefetched catalog entries

        Args:
            entries_by_type: Catalog type -> entries in catalog iteration order

        Returns:
            Populated CatalogIndex. Types with no entries are left out.
        """
        index = cls()
        for catalog_type, entries in (entries_by_type or {}).items():
            for entry in entries or []:
                index.add_entry(catalog_type, entry)

        logger.debug(f"Built catalog index: {len(index)} entries across {len(index.types)} types")
        return index

    def add_entry(self, catalog_type: str, entry: CatalogEntry) -> None:
        """Add one entry; canonical name first, then aliases that are not yet taken"""
        entries = self._entries.setdefault(catalog_type, [])
        matches = self._matches.setdefault(catalog_type, {})
        entries.append(entry)

        canonical_keys = self._canonical_keys.setdefault(catalog_type, set())
        name_key = normalize_key(entry.canonical_name)
        if name_key in canonical_keys:
            logger.warning(f"Duplicate canonical name '{entry.canonical_name}' in catalog '{catalog_type}', keeping first")
        elif name_key:
            # Canonical names take their key back from an earlier entry's alias
            canonical_keys.add(name_key)
            matches[name_key] = KeyMatch(entry, entry.canonical_name, True)

        for alias in entry.aliases:
            alias_key = normalize_key(alias)
            if not alias_key or alias_key in matches:
                continue
            matches[alias_key] = KeyMatch(entry, alias, False)

    @property
    def types(self) -> List[str]:
        """Catalog types present in the index"""
        return list(self._entries.keys())

    def __contains__(self, catalog_type: str) -> bool:
        return catalog_type in self._entries

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def entries_for(self, catalog_type: str) -> List[CatalogEntry]:
        """Entries for a type in catalog iteration order (empty list if absent)"""
        return list(self._entries.get(catalog_type, []))

    def match_for(self, catalog_type: str, raw_value: Optional[str]) -> Optional[KeyMatch]:
        """
        Exact canonical-or-alias lookup for a raw value

        Args:
            catalog_type: Catalog type
            raw_value: Canonical name or alias, any case/padding

        Returns:
            KeyMatch, or None if the type or key is unknown
        """
        return self._matches.get(catalog_type, {}).get(normalize_key(raw_value))

    def code_for(self, catalog_type: str, raw_value: Optional[str]) -> Optional[str]:
        """Catalog code for a raw value, or None if the type or key is unknown"""
        match = self.match_for(catalog_type, raw_value)
        return match.entry.code if match else None

    def auxiliary_for(self, catalog_type: str, raw_value: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Look up the auxiliary data for a raw value

        Returns:
            Auxiliary data dict, or None if the type or key is unknown
        """
        match = self.match_for(catalog_type, raw_value)
        if match is None:
            return None
        return match.entry.auxiliary_data or {}

    def code_lookups(self) -> Dict[str, Dict[str, str]]:
        """Per-type normalized key -> code maps, in the shape the template engine takes"""
        return {
            catalog_type: {key: match.entry.code for key, match in matches.items()}
            for catalog_type, matches in self._matches.items()
        }

    def auxiliary_lookups(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Per-type normalized key -> auxiliary data maps"""
        return {
            catalog_type: {key: match.entry.auxiliary_data or {} for key, match in matches.items()}
            for catalog_type, matches in self._matches.items()
        }

    def match_guide(self, catalog_types: Optional[Iterable[str]] = None) -> str:
        """
        Build the catalog match guide for AI prompts

        One line per type listing its canonical names, e.g.
        "colour: Black, Navy, Navy Blue"

        Args:
            catalog_types: Types to include (defaults to all)

        Returns:
            Guide text ('' if nothing to list)
        """
        lines = []
        for catalog_type in (catalog_types if catalog_types is not None else self.types):
            names = [entry.canonical_name for entry in self._entries.get(catalog_type, [])]
            if names:
                lines.append(f"{catalog_type}: {', '.join(names)}")
        return '\n'.join(lines)

    def clear(self) -> None:
        """Drop all content (end of batch)"""
        self._entries.clear()
        self._matches.clear()
        self._canonical_keys.clear()
