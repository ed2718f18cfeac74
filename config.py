#!/usr/bin/env python3
"""
Configuration file for the Catalog Normalizer
Edit these values according to your catalog setup

Most values can be overridden with environment variables (NORMALIZER_*,
CATALOG_DB_*), either exported or put in a .env file in the project root.
"""

import os
from pathlib import Path

# Load environment variables from .env file if it exists (exported values win)
_env_file = Path(__file__).parent / '.env'
if _env_file.exists():
    with open(_env_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ.setdefault(key.strip(), value.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Database Connection (catalog reads from the code_lookups table)
# Used by catalog_match/query_database.py, read-only session
#
# Password Reading Priority (implemented in query_database.py):
# 1. Environment variable: CATALOG_DB_PASSWORD (highest priority)
# 2. .env file in project root: CATALOG_DB_PASSWORD=your_password
# 3. Interactive prompt (fallback if neither above is set)
#
DB_CONFIG = {
    'host': os.environ.get('CATALOG_DB_HOST', 'localhost'),
    'port': int(os.environ.get('CATALOG_DB_PORT', '5432')),
    'database': os.environ.get('CATALOG_DB_NAME', 'catalog'),
    'user': os.environ.get('CATALOG_DB_USER', 'catalog_reader'),
    'password': '',  # Read via CATALOG_DB_PASSWORD env var or .env file (see query_database.py)
}

# Catalog Source
# 'yaml'        - one <type>.yaml per catalog type in PATHS['catalogs_dir']
# 'spreadsheet' - one CSV/XLSX sheet with type,name,code,aliases,... columns
# 'postgres'    - code_lookups table (DB_CONFIG)
CATALOG_SOURCE = {
    'kind': os.environ.get('NORMALIZER_CATALOG_SOURCE', 'yaml'),
    'sheet_path': os.environ.get('NORMALIZER_CATALOG_SHEET', 'data/catalog.xlsx'),
    # Excel files use openpyxl engine
    'excel_engine': 'openpyxl',
}

# Reconciliation Settings
RECONCILIATION = {
    'empty_value': os.environ.get('NORMALIZER_EMPTY_VALUE', 'Unknown'),  # Value for empty input
    'compound_values': True,           # Try parts of "WHITE/PEARL" style values
}

# Template Settings
TEMPLATES = {
    'max_workers': int(os.environ.get('NORMALIZER_MAX_WORKERS', '1')),  # Per-item template threads
}

# AI Enrichment Settings (Ollama, no API key required)
ENRICHMENT = {
    'enabled': _env_bool('NORMALIZER_AI_ENABLED', True),
    'ollama_base_url': os.environ.get('NORMALIZER_OLLAMA_URL', 'http://localhost:11434'),
    'model_name': os.environ.get('NORMALIZER_AI_MODEL', 'llama3.2:1b'),
    'temperature': 0.2,
    'timeout': int(os.environ.get('NORMALIZER_AI_TIMEOUT', '30')),  # Seconds per item
    'max_workers': 4,                  # Parallel item requests
    'include_catalog_guide': True,     # Add allowed catalog values to prompts
}

# File Paths
PATHS = {
    'profiles_dir': os.environ.get('NORMALIZER_PROFILES_DIR', 'rules/profiles'),  # 00_meta.yaml + NN_<profile>.yaml
    'catalogs_dir': os.environ.get('NORMALIZER_CATALOGS_DIR', 'rules/catalogs'),  # <type>.yaml
    'data_dir': os.environ.get('NORMALIZER_DATA_DIR', 'data'),                    # Line item JSON files
    'log_folder': os.environ.get('NORMALIZER_LOG_DIR', 'logs/'),
}

# Logging Settings
LOGGING = {
    'level': os.environ.get('NORMALIZER_LOG_LEVEL', 'INFO'),  # DEBUG, INFO, WARNING, ERROR
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}
