#!/usr/bin/env python3
"""
AI Enrichment - Generate computed field values with a local LLM

Enrichment fields carry a prompt ("Write a 2-sentence German product
description") and a fallback. For each line item the backend gets the
item's current values plus every field's prompt and returns one JSON
object with a value per field.

Backend: Ollama HTTP API (no API keys required). When the backend is
disabled or unreachable every field gets its fallback; enrich() never raises.
Results are not deterministic.
"""

import re
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .field_values import stringify

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentField:
    """Field to enrich"""
    key: str
    label: str
    prompt: str
    fallback: str = ''


@dataclass
class EnrichmentItem:
    """Line item data handed to the backend"""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichmentResult:
    """Generated values for one item"""
    id: str
    values: Dict[str, str] = field(default_factory=dict)
    used_fallback: bool = False


def fallback_values(fields: List[EnrichmentField]) -> Dict[str, str]:
    return {f.key: f.fallback or '' for f in fields}


class Enricher:
    """Enrichment capability interface; the base class only returns fallbacks"""

    # Set include_catalog_guide to get the batch's allowed catalog values
    # through set_catalog_guide() before enrich() is called
    include_catalog_guide = False
    catalog_guide = ''

    def set_catalog_guide(self, guide: str) -> None:
        self.catalog_guide = guide or ''

    def enrich(self, fields: List[EnrichmentField], items: List[EnrichmentItem]) -> List[EnrichmentResult]:
        return [EnrichmentResult(id=item.id, values=fallback_values(fields), used_fallback=True) for item in items]


class OllamaEnricher(Enricher):
    """Enrich line items through a local Ollama model"""

    def __init__(self, config: Optional[Dict] = None, catalog_guide: str = ''):
        """
        Initialize the Ollama enricher

        Args:
            config: ENRICHMENT settings (see config.py)
            catalog_guide: Optional catalog match guide added to every prompt
                (replaced by the batch guide when include_catalog_guide is set)
        """
        self.config = config or {}
        self.enabled = self.config.get('enabled', True)
        self.base_url = self.config.get('ollama_base_url', 'http://localhost:11434').rstrip('/')
        self.model_name = self.config.get('model_name', 'llama3.2:1b')
        self.temperature = self.config.get('temperature', 0.2)
        self.timeout = self.config.get('timeout', 30)
        self.max_workers = max(1, int(self.config.get('max_workers', 4)))
        self.include_catalog_guide = bool(self.config.get('include_catalog_guide', False))
        self.catalog_guide = catalog_guide
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        """Check (once) that the Ollama API answers"""
        if not self.enabled:
            return False
        if self._available is None:
            try:
                response = requests.get(f'{self.base_url}/api/tags', timeout=5)
                self._available = response.status_code == 200
                if self._available:
                    models = [tag.get('name') for tag in response.json().get('models', [])]
                    if models and self.model_name not in models:
                        logger.warning(f"Model {self.model_name} not found. Available: {models}")
                else:
                    logger.warning(f"Ollama API returned status {response.status_code}")
            except requests.RequestException as e:
                logger.warning(f"Ollama API not accessible at {self.base_url}: {e}")
                self._available = False
        return self._available

    def enrich(self, fields: List[EnrichmentField], items: List[EnrichmentItem]) -> List[EnrichmentResult]:
        """
        Enrich a batch of items

        Args:
            fields: Fields to generate
            items: Items with their current values

        Returns:
            One EnrichmentResult per item, in input order
        """
        if not fields or not items:
            return []

        if not self.is_available():
            logger.warning("AI enrichment backend unavailable, using fallback values")
            return super().enrich(fields, items)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda item: self.enrich_item(fields, item), items))

    def enrich_item(self, fields: List[EnrichmentField], item: EnrichmentItem) -> EnrichmentResult:
        """Enrich one item; any failure gives that item's fields their fallbacks"""
        prompt = self._create_enrichment_prompt(fields, item)
        try:
            response = requests.post(
                f'{self.base_url}/api/generate',
                json={
                    'model': self.model_name,
                    'prompt': prompt,
                    'stream': False,
                    'format': 'json',
                    'options': {
                        'temperature': self.temperature,
                        'num_predict': 600,
                    }
                },
                timeout=self.timeout
            )
            if response.status_code != 200:
                logger.error(f"Ollama API returned status {response.status_code} for item {item.id}")
                return EnrichmentResult(id=item.id, values=fallback_values(fields), used_fallback=True)

            generated = self._parse_ai_response(response.json().get('response', ''), fields)
        except requests.Timeout:
            logger.error(f"Ollama request timeout for item {item.id}")
            return EnrichmentResult(id=item.id, values=fallback_values(fields), used_fallback=True)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"AI enrichment error for item {item.id}: {e}")
            return EnrichmentResult(id=item.id, values=fallback_values(fields), used_fallback=True)

        if generated is None:
            logger.error(f"Could not parse AI response for item {item.id}")
            return EnrichmentResult(id=item.id, values=fallback_values(fields), used_fallback=True)

        values = {}
        used_fallback = False
        for f in fields:
            value = generated.get(f.key)
            if value:
                values[f.key] = value
            else:
                values[f.key] = f.fallback or ''
                used_fallback = True
        return EnrichmentResult(id=item.id, values=values, used_fallback=used_fallback)

    def _create_enrichment_prompt(self, fields: List[EnrichmentField], item: EnrichmentItem) -> str:
        """Create prompt for one item"""
        product_context = '\n'.join(
            f"{key}: {stringify(value)}" for key, value in item.data.items()
            if value is not None and stringify(value) != ''
        )
        field_lines = '\n'.join(f"- {f.key} ({f.label}): {f.prompt}" for f in fields)
        keys = ', '.join(f'"{f.key}": "..."' for f in fields)
        guide = f"\n## Allowed Catalog Values\n{self.catalog_guide}\n" if self.catalog_guide else ''

        prompt = f"""You are a product data enrichment assistant. Generate values for the requested fields based on the product data.

## Product Data
{product_context}
{guide}
## Fields to Generate
{field_lines}

## Instructions
1. Generate a value for each field based on its prompt and the product data
2. Be concise and accurate
3. If you cannot generate a value, use an empty string

Return ONLY a JSON object with these exact keys: {{{keys}}}

JSON:"""
        return prompt

    def _parse_ai_response(self, response_text: str, fields: List[EnrichmentField]) -> Optional[Dict[str, str]]:
        """Parse the model's JSON object; None if there is none"""
        json_match = re.search(r'\{.*\}', response_text or '', re.DOTALL)
        if not json_match:
            return None
        try:
            parsed = json.loads(json_match.group(0))
        except json.JSONDecodeError as e:
            logger.debug(f"Failed to parse AI JSON response: {e}")
            return None
        if not isinstance(parsed, dict):
            return None
        return {f.key: stringify(parsed.get(f.key)).strip() for f in fields}
