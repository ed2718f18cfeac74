#!/usr/bin/env python3
"""
Line Item Store - JSON file persistence for line items

File layout (one order/batch per file):

    {
      "items": [
        {"id": "li-1", "line_number": 1, "normalized_data": {...},
         "user_modified": false, "status": "extracted"},
        ...
      ]
    }

A bare top-level list of records is read as well. Updates are merged into
normalized_data, the update's flags are copied onto the record, and the file
is rewritten in one go (temp file + replace), so a failed write changes
nothing.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .batch_regenerator import ItemUpdate
from .field_definitions import FieldDefinition, PersistenceFailure
from .field_values import LineItemView, ingest_line_items

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    """Outcome of apply_updates()"""
    applied: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_failure(self) -> Optional[PersistenceFailure]:
        """PersistenceFailure describing the failed subset (None if all applied)"""
        if not self.failed:
            return None
        details = '; '.join(f"{item_id}: {reason}" for item_id, reason in self.failed.items())
        return PersistenceFailure(f"{len(self.failed)} updates not applied ({details})", list(self.failed))


class JsonLineItemStore:
    """Load line items from and write updates back to a JSON file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise PersistenceFailure(f"Line item file not found: {self.path}")
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Could not read line items from {self.path}: {e}") from e

        if isinstance(data, list):
            data = {'items': data}
        if not isinstance(data, dict) or not isinstance(data.get('items'), list):
            raise PersistenceFailure(f"Unexpected line item file format: {self.path}")
        return data

    def load_records(self) -> List[Dict[str, Any]]:
        """Raw records in file order"""
        return list(self._read()['items'])

    def load_items(self, field_defs: List[FieldDefinition]) -> List[LineItemView]:
        """
        Load line items as LineItemView (values typed per field definition)

        Args:
            field_defs: Field definitions of the active profile

        Returns:
            Line items in file order
        """
        records = self.load_records()
        logger.info(f"Loaded {len(records)} line items from {self.path}")
        return ingest_line_items(records, field_defs)

    def apply_updates(self, updates: List[ItemUpdate], raise_on_failure: bool = False) -> PersistResult:
        """
        Merge updates into the stored records and rewrite the file

        Updates for unknown ids are reported as failed and not applied; the
        other updates are still written.

        Args:
            updates: Item updates (from regenerate() or normalize_items())
            raise_on_failure: Raise PersistenceFailure if any update failed

        Returns:
            PersistResult

        Raises:
            PersistenceFailure: the file could not be read or written (nothing applied),
                or raise_on_failure and some updates failed
        """
        result = PersistResult()
        if not updates:
            return result

        data = self._read()
        records_by_id = {str(record.get('id')): record for record in data['items']}

        for update in updates:
            record = records_by_id.get(str(update.id))
            if record is None:
                logger.error(f"Cannot apply update: line item {update.id} not found in {self.path}")
                result.failed[update.id] = 'not found'
                continue
            data_key = 'normalized_data' if 'normalized_data' in record or 'data' not in record else 'data'
            merged = dict(record.get(data_key) or {})
            for key in update.changed_fields:
                merged[key] = update.values.get(key)
            record[data_key] = merged
            record.update(update.flags)
            record['updated_at'] = datetime.now().isoformat()
            result.applied.append(update.id)

        if result.applied:
            self._write(data, result.applied)

        logger.info(f"Applied {len(result.applied)} updates to {self.path} ({len(result.failed)} failed)")
        if raise_on_failure and result.failed:
            raise result.as_failure()
        return result

    def _write(self, data: Dict[str, Any], item_ids: List[str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise PersistenceFailure(f"Could not write line items to {self.path}: {e}", item_ids) from e
