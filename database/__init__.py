"""Database package: the asyncpg pool behind the ledger store.

The pool is created once per process by init_db(), which also makes sure the
target database exists and its schema is current. Sync code never touches the
pool directly; it goes through the LedgerStore returned by get_store().
"""

import logging
import ssl
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager
from .store import LedgerStore

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None

# sslmode values that need a verified TLS connection
TLS_MODES = ('require', 'verify-ca', 'verify-full')
DEFAULT_DATABASE = 'defaultdb'

# asyncpg raises these while the cluster is starting or unreachable
RETRYABLE = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    OSError,
)

def database_name(db_url: str) -> str:
    """Name of the target database, from the URL path or ?database=."""
    parsed = urlparse(db_url)
    name = parsed.path.strip('/')
    if name:
        return name
    return parse_qs(parsed.query).get('database', [DEFAULT_DATABASE])[0]

def connection_options(db_url: str, statement_timeout: float = 60.0) -> Dict[str, Any]:
    """asyncpg connect/create_pool keyword arguments for db_url.

    Args:
        db_url: postgresql:// URL, optionally carrying sslmode
        statement_timeout: Server-side limit for a single statement, in seconds
    """
    sslmode = parse_qs(urlparse(db_url).query).get('sslmode', ['disable'])[0]

    tls: Any = False
    if sslmode in TLS_MODES:
        tls = ssl.create_default_context()
        tls.check_hostname = sslmode == 'verify-full'
        tls.verify_mode = ssl.CERT_REQUIRED if sslmode != 'require' else ssl.CERT_NONE

    return {
        'ssl': tls,
        'server_settings': {'statement_timeout': str(int(statement_timeout * 1000))},
    }

@backoff.on_exception(backoff.expo, RETRYABLE, max_tries=5, logger=logger)
async def ensure_database(db_url: str) -> None:
    """Create the target database through the default database if missing."""
    name = database_name(db_url)
    if name == DEFAULT_DATABASE:
        return

    admin_url = urlparse(db_url)._replace(path=f'/{DEFAULT_DATABASE}').geturl()
    conn = await asyncpg.connect(admin_url, **connection_options(admin_url))
    try:
        await conn.execute(f'CREATE DATABASE IF NOT EXISTS "{name}"')
        logger.info(f"Database {name} ready")
    finally:
        await conn.close()

@backoff.on_exception(backoff.expo, RETRYABLE, max_tries=5, logger=logger)
async def init_db(db_url: Optional[str] = None, store_timeout: Optional[float] = None) -> asyncpg.Pool:
    """Create the shared pool and bring the schema up to date.

    Args:
        db_url: Database URL; read from settings.conf when omitted
        store_timeout: Statement and command timeout in seconds; from settings when omitted

    Raises:
        DatabaseError: No database URL is configured
        DatabaseSchemaError: Migrations could not be applied
    """
    global _pool

    if _pool is not None:
        return _pool

    if db_url is None or store_timeout is None:
        # Imported lazily so importing database never reads settings.conf
        from config import get_settings
        settings = get_settings()
        db_url = db_url or settings.get('db_url')
        store_timeout = store_timeout or settings.get('store_timeout', 60.0)
    if not db_url:
        raise DatabaseError("No db_url configured")

    await ensure_database(db_url)

    pool = await asyncpg.create_pool(
        db_url,
        min_size=1,
        max_size=4,  # one walk, at most three concurrent batches
        command_timeout=store_timeout,
        max_inactive_connection_lifetime=300.0,
        **connection_options(db_url, store_timeout)
    )
    try:
        await SchemaManager(pool).initialize()
    except DatabaseSchemaError:
        await pool.close()
        raise

    logger.info(f"Connected to {database_name(db_url)}")
    _pool = pool
    return _pool

async def get_pool() -> asyncpg.Pool:
    """Return the shared pool, initializing it on first use."""
    return _pool if _pool is not None else await init_db()

async def get_store() -> LedgerStore:
    """Get a ledger store bound to the shared pool."""
    return LedgerStore(await get_pool())

async def close() -> None:
    """Close the shared pool if it is open."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None

__all__ = [
    'DatabaseError',
    'DatabaseSchemaError',
    'LedgerStore',
    'close',
    'connection_options',
    'database_name',
    'ensure_database',
    'get_pool',
    'get_store',
    'init_db'
]
