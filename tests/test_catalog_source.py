#!/usr/bin/env python3
"""
Catalog Source Tests
Tests YAML, spreadsheet (pandas) and database catalog sources: stable
ordering, fetch counting and file formats.
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd

# Setup path
TEST_DIR = Path(__file__).parent
PROJECT_ROOT = TEST_DIR.parent
os.chdir(PROJECT_ROOT)

from catalog_match.catalog_index import CatalogEntry
from catalog_match.catalog_source import (
    InMemoryCatalogSource,
    PostgresCatalogSource,
    SpreadsheetCatalogSource,
    YamlCatalogSource,
)


class TestInMemoryCatalogSource(unittest.TestCase):
    """Test InMemoryCatalogSource and the shared fetch contract"""

    def test_fetch_contract(self):
        source = InMemoryCatalogSource([
            CatalogEntry('colour', 'White', '4', sort_order=2),
            CatalogEntry('colour', 'Black', '1', sort_order=1),
            CatalogEntry('colour', 'Grey', '7', sort_order=2),
        ])
        result = source.fetch_catalog_entries(['colour', 'colour', 'material', ''])
        # Sorted by sort_order, equal sort_order keeps insertion order
        self.assertEqual([e.canonical_name for e in result['colour']], ['Black', 'White', 'Grey'])
        # Types without entries are left out
        self.assertNotIn('material', result)
        self.assertEqual(source.get_fetch_count(), 1)
        source.reset_fetch_count()
        self.assertEqual(source.get_fetch_count(), 0)


class TestYamlCatalogSource(unittest.TestCase):
    """Test YamlCatalogSource"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.catalogs_dir = Path(self.tmp.name)
        (self.catalogs_dir / 'colour.yaml').write_text(
            'entries:\n'
            '  - name: Navy\n'
            '    code: "03"\n'
            '    sort_order: 2\n'
            '  - name: Black\n'
            '    code: "01"\n'
            '    aliases: [BLK, Schwarz]\n'
            '    extra_data: {xentral_code: "100"}\n'
            '    sort_order: 1\n',
            encoding='utf-8',
        )
        (self.catalogs_dir / 'brand.yaml').write_text(
            'aliases:\n'
            '  - canonical: Acme\n'
            '    code: ACM\n'
            '    match: [ACME Corp]\n'
            '  - canonical: ""\n'
            '    match: [ignored]\n',
            encoding='utf-8',
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_entries_format(self):
        source = YamlCatalogSource(self.catalogs_dir)
        entries = source.fetch_catalog_entries(['colour'])['colour']
        self.assertEqual([e.canonical_name for e in entries], ['Black', 'Navy'])
        self.assertEqual(entries[0].aliases, ['BLK', 'Schwarz'])
        self.assertEqual(entries[0].auxiliary_data, {'xentral_code': '100'})
        self.assertEqual(entries[0].code, '01')

    def test_alias_file_format(self):
        source = YamlCatalogSource(self.catalogs_dir)
        entries = source.fetch_catalog_entries(['brand'])['brand']
        self.assertEqual(len(entries), 1)
        self.assertEqual((entries[0].canonical_name, entries[0].code, entries[0].aliases), ('Acme', 'ACM', ['ACME Corp']))

    def test_missing_file_and_counts(self):
        source = YamlCatalogSource(self.catalogs_dir)
        result = source.fetch_catalog_entries(['colour', 'brand', 'material'])
        self.assertEqual(sorted(result), ['brand', 'colour'])
        self.assertEqual(source.get_fetch_count(), 1)
        self.assertEqual(source.get_file_read_count(), 2)
        self.assertEqual(source.available_types(), ['brand', 'colour'])

    def test_project_catalogs(self):
        """Test the catalogs shipped in rules/catalogs"""
        source = YamlCatalogSource(PROJECT_ROOT / 'rules' / 'catalogs')
        result = source.fetch_catalog_entries(['colour', 'brand'])
        self.assertEqual(result['colour'][0].canonical_name, 'Navy Blue')
        self.assertEqual(result['brand'][0].auxiliary_data, {'xentral_code': 'X-100'})


class TestSpreadsheetCatalogSource(unittest.TestCase):
    """Test SpreadsheetCatalogSource"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_csv(self):
        sheet = self.tmp_path / 'catalog.csv'
        pd.DataFrame([
            {'type': 'colour', 'name': 'Black', 'code': '01', 'aliases': 'BLK, Schwarz', 'xentral_code': '100'},
            {'type': 'colour', 'name': 'White', 'code': '04', 'aliases': '', 'xentral_code': ''},
            {'type': 'brand', 'name': 'Acme', 'code': 'ACM', 'aliases': '', 'xentral_code': 'X-100'},
        ]).to_csv(sheet, index=False)

        source = SpreadsheetCatalogSource(sheet)
        result = source.fetch_catalog_entries(['colour', 'brand'])
        black, white = result['colour']
        self.assertEqual(black.code, '01')
        self.assertEqual(black.aliases, ['BLK', 'Schwarz'])
        self.assertEqual(black.auxiliary_data, {'xentral_code': '100'})
        self.assertIsNone(white.auxiliary_data)
        self.assertEqual(result['brand'][0].auxiliary_data, {'xentral_code': 'X-100'})

    def test_excel(self):
        sheet = self.tmp_path / 'catalog.xlsx'
        pd.DataFrame([
            {'Type': 'colour', 'Name': 'Black', 'Code': '01', 'Sort_Order': '2'},
            {'Type': 'colour', 'Name': 'Navy', 'Code': '03', 'Sort_Order': '1'},
        ]).to_excel(sheet, index=False, engine='openpyxl')

        result = SpreadsheetCatalogSource(sheet).fetch_catalog_entries(['colour'])
        self.assertEqual([e.canonical_name for e in result['colour']], ['Navy', 'Black'])

    def test_float_sort_order(self):
        """Test sort_order cells saved as floats ('1.0') or left blank"""
        sheet = self.tmp_path / 'catalog.csv'
        pd.DataFrame([
            {'type': 'colour', 'name': 'Black', 'code': '01', 'sort_order': '2.0'},
            {'type': 'colour', 'name': 'Navy', 'code': '03', 'sort_order': '1.0'},
            {'type': 'colour', 'name': 'White', 'code': '04', 'sort_order': ''},
        ]).to_csv(sheet, index=False)

        result = SpreadsheetCatalogSource(sheet).fetch_catalog_entries(['colour'])
        self.assertEqual([e.canonical_name for e in result['colour']], ['White', 'Navy', 'Black'])
        self.assertEqual([e.sort_order for e in result['colour']], [0, 1, 2])

    def test_invalid_sort_order(self):
        sheet = self.tmp_path / 'catalog.csv'
        pd.DataFrame([{'type': 'colour', 'name': 'Black', 'code': '01', 'sort_order': 'first'}]).to_csv(sheet, index=False)
        with self.assertLogs('catalog_match.catalog_source', level='WARNING'):
            result = SpreadsheetCatalogSource(sheet).fetch_catalog_entries(['colour'])
        self.assertEqual(result['colour'][0].sort_order, 0)

    def test_missing_columns(self):
        sheet = self.tmp_path / 'bad.csv'
        pd.DataFrame([{'type': 'colour', 'label': 'Black'}]).to_csv(sheet, index=False)
        with self.assertRaises(ValueError):
            SpreadsheetCatalogSource(sheet).fetch_catalog_entries(['colour'])


class TestPostgresCatalogSource(unittest.TestCase):
    """Test PostgresCatalogSource with the database layer mocked"""

    @patch('catalog_match.query_database.get_catalog_rows')
    def test_rows_to_entries(self, mock_rows):
        mock_rows.return_value = [
            {'type': 'colour', 'name': 'Black', 'code': '01', 'aliases': ['BLK'],
             'extra_data': {'xentral_code': '100'}, 'sort_order': 1},
            {'type': 'colour', 'name': 'Navy', 'code': '03', 'aliases': None, 'extra_data': None, 'sort_order': 2},
        ]
        conn = MagicMock()
        source = PostgresCatalogSource(connection_factory=lambda: conn)
        result = source.fetch_catalog_entries(['colour'])

        self.assertEqual([e.canonical_name for e in result['colour']], ['Black', 'Navy'])
        self.assertEqual(result['colour'][0].aliases, ['BLK'])
        mock_rows.assert_called_once_with(conn, ['colour'])
        conn.close.assert_called_once()

    @patch('catalog_match.query_database.get_catalog_rows')
    def test_connection_closed_on_error(self, mock_rows):
        mock_rows.side_effect = RuntimeError('query failed')
        conn = MagicMock()
        source = PostgresCatalogSource(connection_factory=lambda: conn)
        with self.assertRaises(RuntimeError):
            source.fetch_catalog_entries(['colour'])
        conn.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
