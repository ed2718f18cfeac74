#!/usr/bin/env python3
"""
Main Workflow Script - Catalog Normalization Pipeline
        normalize:   Replace extracted values with canonical catalog names
        regenerate:  Recompute template / AI enrichment fields
        test-match:  Show how one value reconciles against a catalog type

Line items are read from and written back to a JSON file (see
computed_fields/line_item_store.py).
"""

import sys
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional
from datetime import datetime

from catalog_match import (
    CatalogSource,
    PostgresCatalogSource,
    Reconciler,
    SpreadsheetCatalogSource,
    YamlCatalogSource,
)
from computed_fields import (
    BatchRegenerator,
    ConfigurationError,
    Enricher,
    JsonLineItemStore,
    NormalizerError,
    OllamaEnricher,
    ProfileLoader,
    normalize_items,
)
from config import CATALOG_SOURCE, ENRICHMENT, LOGGING, PATHS, RECONCILIATION, TEMPLATES


# Configure logging
def setup_logging(log_level: str = 'INFO', log_dir: Optional[str] = None):
    """Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files (defaults to PATHS['log_folder'])
    """
    log_dir = log_dir or PATHS['log_folder']
    log_file = Path(log_dir) / 'workflow.log'

    # Create log directory
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOGGING['format'],
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def create_catalog_source(kind: Optional[str] = None, path: Optional[str] = None) -> CatalogSource:
    """
    Create the configured catalog source

    Args:
        kind: 'yaml', 'spreadsheet' or 'postgres' (defaults to CATALOG_SOURCE['kind'])
        path: Catalogs directory (yaml) or sheet file (spreadsheet)

    Returns:
        CatalogSource

    Raises:
        ConfigurationError: unknown kind
    """
    kind = kind or CATALOG_SOURCE['kind']
    if kind == 'yaml':
        return YamlCatalogSource(Path(path or PATHS['catalogs_dir']))
    if kind == 'spreadsheet':
        return SpreadsheetCatalogSource(Path(path or CATALOG_SOURCE['sheet_path']), CATALOG_SOURCE['excel_engine'])
    if kind == 'postgres':
        return PostgresCatalogSource()
    raise ConfigurationError(f"Unknown catalog source: {kind}")


class CatalogWorkflow:
    """Normalization / regeneration workflow over one line item file"""

    def __init__(
        self,
        catalog_source: CatalogSource,
        profiles_dir: Optional[str] = None,
        profile_name: Optional[str] = None,
        config: Optional[Dict] = None,
    ):
        """
        Initialize workflow

        Args:
            catalog_source: Catalog source used by every command
            profiles_dir: Field profile directory (defaults to PATHS['profiles_dir'])
            profile_name: Profile to use (defaults to the meta default profile)
            config: Overrides for ENRICHMENT settings
        """
        self.logger = logging.getLogger(__name__)
        self.catalog_source = catalog_source
        self.profile_loader = ProfileLoader(Path(profiles_dir or PATHS['profiles_dir']))
        self.profile_name = profile_name
        self.enrichment_config = {**ENRICHMENT, **(config or {})}
        self.reconciler = Reconciler(empty_value=RECONCILIATION['empty_value'])

    def _field_defs(self):
        return self.profile_loader.get_field_definitions(self.profile_name)

    def _create_enricher(self) -> Enricher:
        # The catalog guide is filled in by BatchRegenerator from its batch index
        return OllamaEnricher(self.enrichment_config)

    def normalize(self, items_file: str, dry_run: bool = False) -> Dict:
        """
        Reconcile catalog-backed extracted fields and write them back

        Args:
            items_file: Line item JSON file
            dry_run: Report only, do not write

        Returns:
            Summary dict
        """
        self.logger.info("=" * 80)
        self.logger.info(f"NORMALIZE: {items_file}")
        self.logger.info("=" * 80)

        field_defs = self._field_defs()
        store = JsonLineItemStore(Path(items_file))
        items = store.load_items(field_defs)

        result = normalize_items(
            items, field_defs, self.catalog_source, self.reconciler,
            compound=RECONCILIATION['compound_values'],
        )
        for row in result.unmatched():
            self.logger.warning(f"No catalog match for {row['field']} on item {row['id']}: '{row['value']}'")

        summary = {
            'items': len(items),
            'normalized': len(result.updates),
            'unchanged': len(result.skipped_items),
            'unmatched_values': len(result.unmatched()),
        }
        if not dry_run:
            persisted = store.apply_updates(result.updates)
            summary['applied'] = len(persisted.applied)
            summary['failed'] = list(persisted.failed)
        return summary

    def regenerate(
        self,
        items_file: str,
        field_keys: Optional[List[str]] = None,
        use_ai: bool = True,
        dry_run: bool = False,
    ) -> Dict:
        """
        Regenerate computed fields and write them back

        Args:
            items_file: Line item JSON file
            field_keys: Only regenerate these fields
            use_ai: Run AI enrichment fields (otherwise they are skipped)
            dry_run: Report only, do not write

        Returns:
            Summary dict
        """
        self.logger.info("=" * 80)
        self.logger.info(f"REGENERATE: {items_file}")
        self.logger.info("=" * 80)

        field_defs = self._field_defs()
        store = JsonLineItemStore(Path(items_file))
        items = store.load_items(field_defs)

        enricher = self._create_enricher() if use_ai else None
        regenerator = BatchRegenerator(
            self.catalog_source,
            enricher=enricher,
            max_workers=TEMPLATES['max_workers'],
        )
        result = regenerator.regenerate(items, field_defs, field_keys)

        summary = result.summary()
        summary['items'] = len(items)
        if not dry_run:
            persisted = store.apply_updates(result.updates)
            summary['applied'] = len(persisted.applied)
            summary['failed'] = list(persisted.failed)
        return summary

    def test_match(self, value: str, catalog_type: str, compound: bool = False) -> Dict:
        """Reconcile one value with debug trace"""
        if compound:
            result = self.reconciler.reconcile_compound(value, catalog_type, self.catalog_source, debug=True)
        else:
            result = self.reconciler.reconcile(value, catalog_type, self.catalog_source, debug=True)
        return result.to_dict()


def main():
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Catalog Normalization Workflow')
    parser.add_argument('--catalog-source', type=str, choices=['yaml', 'spreadsheet', 'postgres'],
                       help='Catalog source (defaults to config CATALOG_SOURCE)')
    parser.add_argument('--catalog-path', type=str,
                       help='Catalogs directory (yaml) or sheet file (spreadsheet)')
    parser.add_argument('--profiles-dir', type=str,
                       help='Field profiles directory')
    parser.add_argument('--profile', type=str,
                       help='Field profile name (defaults to default_profile in 00_meta.yaml)')
    parser.add_argument('--log-level', type=str, default=LOGGING['level'],
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    subparsers = parser.add_subparsers(dest='command', required=True)

    normalize_parser = subparsers.add_parser('normalize', help='Reconcile extracted values against catalogs')
    normalize_parser.add_argument('items_file', type=str, help='Line item JSON file')
    normalize_parser.add_argument('--dry-run', action='store_true', help='Do not write changes')

    regenerate_parser = subparsers.add_parser('regenerate', help='Regenerate computed fields')
    regenerate_parser.add_argument('items_file', type=str, help='Line item JSON file')
    regenerate_parser.add_argument('--fields', type=str,
                                   help='Comma-separated field keys to regenerate (default: all computed)')
    regenerate_parser.add_argument('--no-ai', action='store_true', help='Skip AI enrichment fields')
    regenerate_parser.add_argument('--dry-run', action='store_true', help='Do not write changes')

    match_parser = subparsers.add_parser('test-match', help='Show how a value reconciles')
    match_parser.add_argument('value', type=str, help='Raw value, e.g. "BLK"')
    match_parser.add_argument('--type', dest='catalog_type', type=str, required=True, help='Catalog type')
    match_parser.add_argument('--compound', action='store_true', help='Try parts of compound values')

    args = parser.parse_args()

    # Setup logging
    logger = setup_logging(args.log_level)

    try:
        workflow = CatalogWorkflow(
            create_catalog_source(args.catalog_source, args.catalog_path),
            profiles_dir=args.profiles_dir,
            profile_name=args.profile,
        )

        if args.command == 'normalize':
            summary = workflow.normalize(args.items_file, dry_run=args.dry_run)
        elif args.command == 'regenerate':
            field_keys = [key.strip() for key in args.fields.split(',') if key.strip()] if args.fields else None
            summary = workflow.regenerate(
                args.items_file, field_keys=field_keys, use_ai=not args.no_ai, dry_run=args.dry_run
            )
        else:
            summary = workflow.test_match(args.value, args.catalog_type, compound=args.compound)
    except NormalizerError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    summary['completed_at'] = datetime.now().isoformat()
    logger.info(f"Summary: {json.dumps(summary, indent=2, default=str, ensure_ascii=False)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
