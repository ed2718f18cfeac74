#!/usr/bin/env python3
"""
Workflow Tests
Runs normalize + regenerate end to end on a copy of data/sample_items.json
with the project profiles and catalogs (AI enrichment off).
"""

import os
import json
import shutil
import tempfile
import unittest
from pathlib import Path

# Setup path
TEST_DIR = Path(__file__).parent
PROJECT_ROOT = TEST_DIR.parent
os.chdir(PROJECT_ROOT)

from catalog_match.catalog_source import PostgresCatalogSource, YamlCatalogSource
from computed_fields.field_definitions import ConfigurationError
from workflow import CatalogWorkflow, create_catalog_source


class TestCatalogWorkflow(unittest.TestCase):
    """Test CatalogWorkflow"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.items_file = Path(self.tmp.name) / 'items.json'
        shutil.copy(PROJECT_ROOT / 'data' / 'sample_items.json', self.items_file)
        self.workflow = CatalogWorkflow(
            YamlCatalogSource(PROJECT_ROOT / 'rules' / 'catalogs'),
            profiles_dir=str(PROJECT_ROOT / 'rules' / 'profiles'),
        )

    def tearDown(self):
        self.tmp.cleanup()

    def records(self):
        with open(self.items_file, 'r', encoding='utf-8') as f:
            return {record['id']: record for record in json.load(f)['items']}

    def test_normalize_then_regenerate(self):
        summary = self.workflow.normalize(str(self.items_file))
        self.assertEqual(summary['items'], 3)
        self.assertEqual(summary['failed'], [])

        records = self.records()
        self.assertEqual(records['li-1']['normalized_data']['colour'], 'Black')
        self.assertEqual(records['li-2']['normalized_data']['colour'], 'White')
        self.assertEqual(records['li-3']['normalized_data']['colour'], 'Midnight')

        summary = self.workflow.regenerate(str(self.items_file), use_ai=False)
        self.assertEqual(summary['regenerated_count'], 3)

        records = self.records()
        data = records['li-1']['normalized_data']
        self.assertEqual(data['sku'], 'ACM-01-0001')
        self.assertEqual(data['title'], 'Acme - Widget (Black)')
        self.assertEqual(data['erp_brand'], 'X-100')
        self.assertNotIn('description', data)
        self.assertEqual(records['li-1']['status'], 'validated')
        # Unknown brand: code lookups resolve to ''
        self.assertEqual(records['li-3']['normalized_data']['sku'], '-06-0003')

        # Second run changes nothing
        summary = self.workflow.regenerate(str(self.items_file), use_ai=False)
        self.assertEqual(summary['regenerated_count'], 0)

    def test_regenerate_fetches_each_catalog_type_once(self):
        """Test the AI catalog guide reuses the batch prefetch"""
        for field_keys in (None, ['sku']):
            source = YamlCatalogSource(PROJECT_ROOT / 'rules' / 'catalogs')
            workflow = CatalogWorkflow(
                source,
                profiles_dir=str(PROJECT_ROOT / 'rules' / 'profiles'),
                config={'enabled': False, 'include_catalog_guide': True},
            )
            summary = workflow.regenerate(str(self.items_file), field_keys=field_keys, use_ai=True, dry_run=True)
            self.assertEqual(summary['regenerated_count'], 3)
            self.assertEqual(source.get_fetch_count(), 2, f"Expected 2 fetches for fields {field_keys}")
            self.assertEqual(source.get_file_read_count(), 2, f"Expected 2 file reads for fields {field_keys}")

    def test_dry_run_does_not_write(self):
        before = self.items_file.read_text(encoding='utf-8')
        summary = self.workflow.normalize(str(self.items_file), dry_run=True)
        self.assertEqual(summary['normalized'], 3)
        self.assertNotIn('applied', summary)
        self.assertEqual(self.items_file.read_text(encoding='utf-8'), before)

    def test_test_match(self):
        result = self.workflow.test_match('Mdngt', 'colour')
        self.assertEqual(result['value'], 'Midnight')
        self.assertEqual(result['method'], 'alias')
        self.assertIn('trace', result)
        result = self.workflow.test_match('WHITE/PEARL', 'colour', compound=True)
        self.assertEqual(result['value'], 'White')

    def test_unknown_profile(self):
        workflow = CatalogWorkflow(
            YamlCatalogSource(PROJECT_ROOT / 'rules' / 'catalogs'),
            profiles_dir=str(PROJECT_ROOT / 'rules' / 'profiles'),
            profile_name='furniture',
        )
        with self.assertRaises(ConfigurationError):
            workflow.regenerate(str(self.items_file), use_ai=False)


class TestCreateCatalogSource(unittest.TestCase):
    """Test create_catalog_source"""

    def test_kinds(self):
        self.assertIsInstance(create_catalog_source('yaml'), YamlCatalogSource)
        self.assertIsInstance(create_catalog_source('postgres'), PostgresCatalogSource)
        with self.assertRaises(ConfigurationError):
            create_catalog_source('ldap')


if __name__ == '__main__':
    unittest.main()
