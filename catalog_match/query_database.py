#!/usr/bin/env python3
"""
Catalog database access
Connects to the catalog database (read-only) and reads catalog rows from
the code_lookups table.

Password Reading Priority:
1. Environment variable: CATALOG_DB_PASSWORD
2. .env file in the working directory: CATALOG_DB_PASSWORD=...
3. Interactive prompt
"""

import os
import getpass
import logging
from pathlib import Path
from typing import Dict, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from config import DB_CONFIG

logger = logging.getLogger(__name__)

CATALOG_QUERY = """
SELECT
    cl.type,
    cl.name,
    cl.code,
    cl.aliases,
    cl.extra_data,
    cl.sort_order
FROM code_lookups cl
WHERE cl.type = ANY(%s)
ORDER BY cl.type, cl.sort_order, cl.name
"""


def _read_env_file(env_file: Path = Path('.env')) -> Dict[str, str]:
    """Read KEY=value pairs from a .env file (missing file -> empty dict)"""
    values = {}
    if not env_file.exists():
        return values
    with open(env_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            values[key.strip()] = value.strip()
    return values


def get_db_password() -> str:
    """Get database password securely"""
    password = os.environ.get('CATALOG_DB_PASSWORD')
    if password:
        return password

    password = _read_env_file().get('CATALOG_DB_PASSWORD')
    if password and password != 'your_password_here':
        return password

    return getpass.getpass("Enter catalog database password: ")


def connect_to_database(password: Optional[str] = None):
    """
    Connect to the catalog database.

    Connection details come from DB_CONFIG, overridden by CATALOG_DB_HOST,
    CATALOG_DB_PORT, CATALOG_DB_NAME and CATALOG_DB_USER (environment first,
    then .env file).

    Args:
        password: Explicit password (skips the lookup chain)

    Returns:
        psycopg2 connection
    """
    env_file_values = _read_env_file()

    def _setting(env_key: str, config_key: str):
        return os.environ.get(env_key) or env_file_values.get(env_key) or DB_CONFIG.get(config_key)

    host = _setting('CATALOG_DB_HOST', 'host')
    port = int(_setting('CATALOG_DB_PORT', 'port') or 5432)
    database = _setting('CATALOG_DB_NAME', 'database')
    user = _setting('CATALOG_DB_USER', 'user')

    logger.info(f"Connecting to catalog database as {user}@{host}:{port}/{database}")
    conn = psycopg2.connect(
        host=host,
        user=user,
        password=password or DB_CONFIG.get('password') or get_db_password(),
        database=database,
        port=port,
    )
    conn.set_session(readonly=True)
    return conn


def get_catalog_rows(conn, catalog_types: List[str]) -> List[Dict]:
    """
    Read catalog rows for the given types in one query

    Rows come back ordered by type, sort_order, name so catalog iteration
    order is stable between runs.

    Args:
        conn: psycopg2 connection
        catalog_types: Catalog types to read

    Returns:
        List of row dicts (type, name, code, aliases, extra_data, sort_order)
    """
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(CATALOG_QUERY, (list(catalog_types),))
        return [dict(row) for row in cur.fetchall()]
