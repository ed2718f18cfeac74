#!/usr/bin/env python3
"""
Field Definitions - Tenant field configuration consumed by the engine

A field is either extracted (value comes from the supplier document) or
computed. A computed field carries exactly one kind of logic:

- TemplateLogic(template)              - evaluated by the template engine
- AIEnrichmentLogic(prompt, fallback)  - generated by the enrichment backend
- NoLogic()                            - computed field with nothing configured

Profiles live in YAML files under the profiles directory:

    00_meta.yaml         default_profile, version, description
    10_<name>.yaml       name + fields list

Also defines the error types shared by the computed_fields package.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import yaml

logger = logging.getLogger(__name__)

SOURCE_EXTRACTED = 'extracted'
SOURCE_COMPUTED = 'computed'

LOGIC_TEMPLATE = 'template'
LOGIC_AI_ENRICHMENT = 'ai_enrichment'
LOGIC_NONE = 'none'

VALUE_TYPES = ('string', 'number', 'boolean')


class NormalizerError(Exception):
    """Base class for engine errors"""


class ConfigurationError(NormalizerError):
    """No usable field definitions / catalog; raised before any work starts"""


class EvaluationFailure(NormalizerError):
    """A single template or enrichment evaluation failed"""

    def __init__(self, field_key: str, message: str, item_id: Optional[str] = None):
        self.field_key = field_key
        self.item_id = item_id
        super().__init__(f"{field_key}: {message}")


class PersistenceFailure(NormalizerError):
    """Updates for some items could not be written"""

    def __init__(self, message: str, failed_ids: Optional[List[str]] = None):
        self.failed_ids = list(failed_ids or [])
        super().__init__(message)


@dataclass(frozen=True)
class TemplateLogic:
    template: str


@dataclass(frozen=True)
class AIEnrichmentLogic:
    prompt: str
    fallback: str = ''


@dataclass(frozen=True)
class NoLogic:
    pass


ComputedLogic = Union[TemplateLogic, AIEnrichmentLogic, NoLogic]

T = TypeVar('T')


def match_logic(
    logic: ComputedLogic,
    on_template: Callable[[TemplateLogic], T],
    on_ai_enrichment: Callable[[AIEnrichmentLogic], T],
    on_none: Callable[[NoLogic], T],
) -> T:
    """
    Dispatch on the logic variant. Every variant needs a handler, so adding a
    new kind of computed field means touching every call site.

    Raises:
        TypeError: logic is not one of the known variants
    """
    if isinstance(logic, TemplateLogic):
        return on_template(logic)
    if isinstance(logic, AIEnrichmentLogic):
        return on_ai_enrichment(logic)
    if isinstance(logic, NoLogic):
        return on_none(logic)
    raise TypeError(f"Unknown computed field logic: {type(logic).__name__}")


@dataclass
class FieldDefinition:
    """One configured field"""
    key: str
    label: str = ''
    source: str = SOURCE_EXTRACTED
    catalog_key: Optional[str] = None
    value_type: str = 'string'
    logic: ComputedLogic = field(default_factory=NoLogic)

    @property
    def is_computed(self) -> bool:
        return self.source == SOURCE_COMPUTED

    @property
    def is_template(self) -> bool:
        return self.is_computed and isinstance(self.logic, TemplateLogic)

    @property
    def is_ai_enrichment(self) -> bool:
        return self.is_computed and isinstance(self.logic, AIEnrichmentLogic)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDefinition':
        """
        Parse one field from profile configuration

        Accepts the current shape (source/logic_type/template/ai_prompt) and
        the older use_template flag, which is read as a template field.

        Args:
            data: Field configuration mapping

        Returns:
            FieldDefinition

        Raises:
            ConfigurationError: missing key or unknown source/logic/type
        """
        key = str(data.get('key') or '').strip()
        if not key:
            raise ConfigurationError(f"Field definition without key: {data}")

        template = data.get('template') or ''
        prompt = data.get('ai_prompt') or ''
        source = data.get('source') or (SOURCE_COMPUTED if data.get('use_template') else SOURCE_EXTRACTED)
        if source not in (SOURCE_EXTRACTED, SOURCE_COMPUTED):
            raise ConfigurationError(f"Field '{key}': unknown source '{source}'")

        value_type = data.get('type') or 'string'
        if value_type not in VALUE_TYPES:
            raise ConfigurationError(f"Field '{key}': unknown type '{value_type}'")

        logic_type = data.get('logic_type')
        if logic_type is None and data.get('use_template'):
            logic_type = LOGIC_TEMPLATE

        if source == SOURCE_EXTRACTED or not logic_type or logic_type == LOGIC_NONE:
            logic: ComputedLogic = NoLogic()
        elif logic_type == LOGIC_TEMPLATE:
            logic = TemplateLogic(template) if template else NoLogic()
        elif logic_type == LOGIC_AI_ENRICHMENT:
            logic = AIEnrichmentLogic(prompt, str(data.get('fallback') or '')) if prompt else NoLogic()
        else:
            raise ConfigurationError(f"Field '{key}': unknown logic_type '{logic_type}'")

        return cls(
            key=key,
            label=str(data.get('label') or key),
            source=source,
            catalog_key=data.get('catalog_key') or data.get('normalize_with') or None,
            value_type=value_type,
            logic=logic,
        )


def parse_field_definitions(fields: List[Dict[str, Any]]) -> List[FieldDefinition]:
    """
    Parse a profile's field list

    Raises:
        ConfigurationError: empty list, bad field, or duplicate key
    """
    if not fields:
        raise ConfigurationError("No field definitions configured")

    definitions = []
    seen = set()
    for data in fields:
        definition = FieldDefinition.from_dict(data)
        if definition.key in seen:
            raise ConfigurationError(f"Duplicate field key '{definition.key}'")
        seen.add(definition.key)
        definitions.append(definition)
    return definitions


class ProfileLoader:
    """Load field profiles from YAML files in a profiles directory"""

    def __init__(self, profiles_dir: Path):
        """
        Initialize profile loader with profiles directory

        Args:
            profiles_dir: Directory containing 00_meta.yaml and numbered profile files
        """
        self.profiles_dir = Path(profiles_dir)
        self._meta: Dict[str, Any] = {}
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._load_all_profiles()

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load a YAML file directly"""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading YAML file {file_path}: {e}")
            return {}

    def _load_all_profiles(self) -> None:
        if not self.profiles_dir.exists():
            logger.error(f"Profiles directory not found: {self.profiles_dir}")
            return

        meta_file = self.profiles_dir / '00_meta.yaml'
        if meta_file.exists():
            self._meta = self._load_yaml_file(meta_file)
        else:
            logger.warning("00_meta.yaml not found, first profile file will be the default")

        for profile_file in sorted(self.profiles_dir.glob('[0-9][0-9]_*.yaml')):
            if profile_file.name == '00_meta.yaml':
                continue
            data = self._load_yaml_file(profile_file)
            if not data:
                continue
            name = data.get('name') or profile_file.stem.split('_', 1)[1]
            self._profiles[name] = data
            logger.debug(f"Loaded profile '{name}' from {profile_file.name}")

        logger.info(f"Loaded {len(self._profiles)} field profiles from {self.profiles_dir}")

    def get_meta(self) -> Dict[str, Any]:
        return dict(self._meta)

    def profile_names(self) -> List[str]:
        return list(self._profiles.keys())

    def default_profile_name(self) -> Optional[str]:
        name = self._meta.get('default_profile')
        if name:
            return name
        return next(iter(self._profiles), None)

    def get_field_definitions(self, profile_name: Optional[str] = None) -> List[FieldDefinition]:
        """
        Get parsed field definitions for a profile

        Args:
            profile_name: Profile name (defaults to the meta default profile)

        Returns:
            List of FieldDefinition in configured order

        Raises:
            ConfigurationError: profile not found or has no valid fields
        """
        name = profile_name or self.default_profile_name()
        if not name or name not in self._profiles:
            raise ConfigurationError(f"No processing profile found: {name or '(default)'}")
        return parse_field_definitions(self._profiles[name].get('fields') or [])
