#!/usr/bin/env python3
"""
AI Enrichment Tests
Tests the Ollama enricher with the HTTP layer mocked out: availability
check, response parsing and per-item fallback on failures.
"""

import os
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

# Setup path
TEST_DIR = Path(__file__).parent
PROJECT_ROOT = TEST_DIR.parent
os.chdir(PROJECT_ROOT)

from computed_fields.ai_enrichment import (
    Enricher,
    EnrichmentField,
    EnrichmentItem,
    OllamaEnricher,
)


def http_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


TAGS_OK = http_response(200, {'models': [{'name': 'llama3.2:1b'}]})


class TestOllamaEnricher(unittest.TestCase):
    """Test OllamaEnricher"""

    def setUp(self):
        self.fields = [
            EnrichmentField('description', 'Description', 'Describe it', 'No description'),
            EnrichmentField('material', 'Material', 'Guess the material'),
        ]
        self.items = [
            EnrichmentItem('li-1', {'brand': 'Acme', 'name': 'Widget', 'quantity': 2}),
            EnrichmentItem('li-2', {'brand': 'Acme', 'name': 'Gadget'}),
        ]
        self.config = {'enabled': True, 'max_workers': 1, 'timeout': 5}

    def test_base_enricher_returns_fallbacks(self):
        results = Enricher().enrich(self.fields, self.items)
        self.assertEqual([r.id for r in results], ['li-1', 'li-2'])
        self.assertEqual(results[0].values, {'description': 'No description', 'material': ''})
        self.assertTrue(results[0].used_fallback)

    @patch('computed_fields.ai_enrichment.requests.post')
    @patch('computed_fields.ai_enrichment.requests.get')
    def test_disabled(self, mock_get, mock_post):
        enricher = OllamaEnricher({'enabled': False})
        results = enricher.enrich(self.fields, self.items)
        self.assertTrue(all(r.used_fallback for r in results))
        mock_get.assert_not_called()
        mock_post.assert_not_called()

    @patch('computed_fields.ai_enrichment.requests.post')
    @patch('computed_fields.ai_enrichment.requests.get')
    def test_backend_unreachable(self, mock_get, mock_post):
        mock_get.side_effect = requests.ConnectionError('refused')
        enricher = OllamaEnricher(self.config)
        results = enricher.enrich(self.fields, self.items)
        self.assertEqual(results[1].values['description'], 'No description')
        mock_post.assert_not_called()
        # Availability is checked once
        enricher.enrich(self.fields, self.items)
        self.assertEqual(mock_get.call_count, 1)

    @patch('computed_fields.ai_enrichment.requests.post')
    @patch('computed_fields.ai_enrichment.requests.get')
    def test_success(self, mock_get, mock_post):
        mock_get.return_value = TAGS_OK
        mock_post.return_value = http_response(200, {
            'response': 'Sure! {"description": "A sturdy widget.", "material": "Steel"}'
        })
        results = OllamaEnricher(self.config, catalog_guide='colour: Black, White').enrich(self.fields, self.items)
        self.assertEqual(results[0].values, {'description': 'A sturdy widget.', 'material': 'Steel'})
        self.assertFalse(results[0].used_fallback)

        request = mock_post.call_args.kwargs['json']
        self.assertEqual(request['format'], 'json')
        self.assertFalse(request['stream'])
        self.assertIn('colour: Black, White', request['prompt'])
        self.assertIn('- description (Description): Describe it', request['prompt'])

    @patch('computed_fields.ai_enrichment.requests.post')
    @patch('computed_fields.ai_enrichment.requests.get')
    def test_one_item_fails_others_continue(self, mock_get, mock_post):
        """Test a timeout for one item gives only that item its fallbacks"""
        mock_get.return_value = TAGS_OK
        mock_post.side_effect = [
            requests.Timeout('slow'),
            http_response(200, {'response': '{"description": "Gadget text", "material": ""}'}),
        ]
        results = OllamaEnricher(self.config).enrich(self.fields, self.items)
        self.assertTrue(results[0].used_fallback)
        self.assertEqual(results[0].values['description'], 'No description')
        self.assertEqual(results[1].values['description'], 'Gadget text')
        # Empty generated value falls back per field
        self.assertEqual(results[1].values['material'], '')
        self.assertTrue(results[1].used_fallback)

    @patch('computed_fields.ai_enrichment.requests.post')
    @patch('computed_fields.ai_enrichment.requests.get')
    def test_bad_status_and_unparseable_response(self, mock_get, mock_post):
        mock_get.return_value = TAGS_OK
        mock_post.side_effect = [
            http_response(500),
            http_response(200, {'response': 'I cannot help with that'}),
        ]
        results = OllamaEnricher(self.config).enrich(self.fields, self.items)
        self.assertTrue(all(r.used_fallback for r in results))
        self.assertEqual([r.values['description'] for r in results], ['No description', 'No description'])

    def test_parse_ai_response(self):
        enricher = OllamaEnricher(self.config)
        parsed = enricher._parse_ai_response('```json\n{"description": " Text ", "material": 3}\n```', self.fields)
        self.assertEqual(parsed, {'description': 'Text', 'material': '3'})
        self.assertIsNone(enricher._parse_ai_response('{not json}', self.fields))
        self.assertIsNone(enricher._parse_ai_response('', self.fields))

    def test_empty_input(self):
        self.assertEqual(OllamaEnricher(self.config).enrich([], self.items), [])
        self.assertEqual(OllamaEnricher(self.config).enrich(self.fields, []), [])


if __name__ == '__main__':
    unittest.main()
