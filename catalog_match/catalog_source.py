#!/usr/bin/env python3
"""
Catalog Sources
Implementations of the catalog fetch contract:

    fetch_catalog_entries(types) -> {type: [CatalogEntry, ...]}

Every source returns entries in a stable order: by sort_order, then by the
order the rows appear in the underlying file/table. Types without entries
are left out of the result.

- InMemoryCatalogSource: entries handed in directly (tests, callers with their own store)
- YamlCatalogSource: one YAML file per catalog type under a catalogs directory
- SpreadsheetCatalogSource: one CSV/XLSX sheet with a 'type' column (pandas)
- PostgresCatalogSource: code_lookups table (psycopg2)
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
import yaml

from .catalog_index import CatalogEntry

logger = logging.getLogger(__name__)

# Spreadsheet columns that are part of the entry itself; every other column
# becomes auxiliary data
ENTRY_COLUMNS = {'type', 'name', 'canonical_name', 'code', 'aliases', 'sort_order'}


def _sorted_entries(entries: List[CatalogEntry]) -> List[CatalogEntry]:
    # sorted() is stable, so equal sort_order keeps source order
    return sorted(entries, key=lambda entry: entry.sort_order)


def _parse_sort_order(value: Any) -> int:
    """Sheet cell -> sort order; '1.0' reads as 1, blank as 0"""
    text = str(value).strip()
    if not text:
        return 0
    number = pd.to_numeric(text, errors='coerce')
    if pd.isna(number):
        logger.warning(f"Invalid sort_order '{value}' in catalog sheet, using 0")
        return 0
    return int(number)


class CatalogSource:
    """Base class for catalog sources; counts fetch calls"""

    def __init__(self):
        self._fetch_count = 0

    def fetch_catalog_entries(self, catalog_types: Iterable[str]) -> Dict[str, List[CatalogEntry]]:
        """
        Fetch entries for several catalog types at once

        Args:
            catalog_types: Catalog types to fetch

        Returns:
            Catalog type -> entries in stable order (types with no entries omitted)
        """
        requested = list(dict.fromkeys(t for t in catalog_types if t))
        self._fetch_count += 1
        if not requested:
            return {}

        result = {}
        for catalog_type, entries in self._load(requested).items():
            if entries:
                result[catalog_type] = _sorted_entries(entries)

        logger.debug(
            f"Fetched {sum(len(e) for e in result.values())} catalog entries "
            f"for {len(requested)} types ({type(self).__name__})"
        )
        return result

    def _load(self, catalog_types: List[str]) -> Dict[str, List[CatalogEntry]]:
        raise NotImplementedError

    def get_fetch_count(self) -> int:
        """Number of fetch_catalog_entries calls so far"""
        return self._fetch_count

    def reset_fetch_count(self) -> None:
        self._fetch_count = 0


class InMemoryCatalogSource(CatalogSource):
    """Catalog held in memory"""

    def __init__(self, entries: Optional[Iterable[CatalogEntry]] = None):
        super().__init__()
        self._entries: Dict[str, List[CatalogEntry]] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: CatalogEntry) -> None:
        self._entries.setdefault(entry.type, []).append(entry)

    def _load(self, catalog_types: List[str]) -> Dict[str, List[CatalogEntry]]:
        return {t: list(self._entries.get(t, [])) for t in catalog_types}


class YamlCatalogSource(CatalogSource):
    """
    Catalog files in a directory, one per type: <catalogs_dir>/<type>.yaml

    File format:

        type: colour          # optional, defaults to the file stem
        entries:
          - name: Black
            code: "01"
            aliases: [BLK, Schwarz]
            extra_data: {xentral_code: "100"}

    The alias-file layout (canonical + match list) is accepted as well:

        aliases:
          - canonical: Black
            match: [BLK, Schwarz]
    """

    def __init__(self, catalogs_dir: Path):
        super().__init__()
        self.catalogs_dir = Path(catalogs_dir)
        self._file_read_count = 0

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load a YAML file directly"""
        self._file_read_count += 1
        with open(file_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    def _load(self, catalog_types: List[str]) -> Dict[str, List[CatalogEntry]]:
        result = {}
        for catalog_type in catalog_types:
            catalog_file = self.catalogs_dir / f'{catalog_type}.yaml'
            if not catalog_file.exists():
                logger.warning(f"Catalog file not found: {catalog_file}")
                continue
            data = self._load_yaml_file(catalog_file)
            result[catalog_type] = self._parse_catalog(catalog_type, data)
            logger.info(f"Loaded {len(result[catalog_type])} '{catalog_type}' entries from {catalog_file.name}")
        return result

    def _parse_catalog(self, catalog_type: str, data: Dict[str, Any]) -> List[CatalogEntry]:
        entries = []
        for row in data.get('entries') or []:
            entries.append(CatalogEntry.from_dict(catalog_type, row))

        # Alias-file layout: canonical + match
        for row in data.get('aliases') or []:
            canonical = row.get('canonical', '')
            if canonical:
                entries.append(CatalogEntry.from_dict(catalog_type, {
                    'name': canonical,
                    'code': row.get('code', ''),
                    'aliases': row.get('match', []),
                    'extra_data': row.get('extra_data'),
                    'sort_order': row.get('sort_order', 0),
                }))
        return entries

    def available_types(self) -> List[str]:
        """Catalog types that have a file in the catalogs directory"""
        if not self.catalogs_dir.exists():
            return []
        return sorted(path.stem for path in self.catalogs_dir.glob('*.yaml'))

    def get_file_read_count(self) -> int:
        return self._file_read_count


class SpreadsheetCatalogSource(CatalogSource):
    """
    Catalog sheet (CSV or Excel) with one row per entry

    Required columns: type, name, code. Optional: aliases (comma-separated),
    sort_order. Any other column is carried as auxiliary data.
    The sheet is read once and kept for the lifetime of the source.
    """

    def __init__(self, sheet_path: Path, excel_engine: str = 'openpyxl'):
        super().__init__()
        self.sheet_path = Path(sheet_path)
        self.excel_engine = excel_engine
        self._df: Optional[pd.DataFrame] = None

    def _read_sheet(self) -> pd.DataFrame:
        if self._df is None:
            if self.sheet_path.suffix.lower() in ('.xlsx', '.xls'):
                df = pd.read_excel(self.sheet_path, engine=self.excel_engine, dtype=str)
            else:
                df = pd.read_csv(self.sheet_path, dtype=str, keep_default_na=False)
            df.columns = [str(c).strip().lower() for c in df.columns]
            missing = {'type', 'name', 'code'} - set(df.columns)
            if missing:
                raise ValueError(f"Catalog sheet {self.sheet_path.name} is missing columns: {sorted(missing)}")
            self._df = df.fillna('')
            logger.info(f"Loaded {len(self._df)} catalog rows from {self.sheet_path.name}")
        return self._df

    def _load(self, catalog_types: List[str]) -> Dict[str, List[CatalogEntry]]:
        df = self._read_sheet()
        extra_columns = [c for c in df.columns if c not in ENTRY_COLUMNS]
        result = {}
        for catalog_type in catalog_types:
            rows = df[df['type'].str.strip() == catalog_type]
            entries = []
            for _, row in rows.iterrows():
                extra_data = {c: row[c] for c in extra_columns if row[c] != ''}
                entries.append(CatalogEntry.from_dict(catalog_type, {
                    'name': row['name'].strip(),
                    'code': row['code'].strip(),
                    'aliases': row.get('aliases', ''),
                    'extra_data': extra_data,
                    'sort_order': _parse_sort_order(row.get('sort_order', '')),
                }))
            result[catalog_type] = entries
        return result


class PostgresCatalogSource(CatalogSource):
    """code_lookups table, one query per fetch"""

    def __init__(self, connection_factory: Optional[Callable] = None):
        super().__init__()
        if connection_factory is None:
            from .query_database import connect_to_database
            connection_factory = connect_to_database
        self._connection_factory = connection_factory

    def _load(self, catalog_types: List[str]) -> Dict[str, List[CatalogEntry]]:
        from .query_database import get_catalog_rows

        conn = self._connection_factory()
        try:
            rows = get_catalog_rows(conn, catalog_types)
        finally:
            conn.close()

        result: Dict[str, List[CatalogEntry]] = {}
        for row in rows:
            result.setdefault(row['type'], []).append(CatalogEntry.from_dict(row['type'], row))
        logger.info(f"Read {len(rows)} catalog rows for {len(catalog_types)} types from database")
        return result
