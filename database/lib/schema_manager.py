"""Versioned schema bootstrap for the ledger database.

Each ``database/schema/vN.py`` module exposes a ``schema`` dict:

    {
        'version': N,
        'tables': [{'name', 'columns', 'primary_key'?, 'indexes'?}, ...],
        'migrations': ['SQL', ...]   # how to reach N from N-1
    }

An empty database is created straight from the newest ``tables`` list. A
database at an older version replays the ``migrations`` of every later
version, one version per transaction.
"""
import importlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'
SCHEMA_PACKAGE = 'database.schema'

Schema = Dict[str, Any]

def table_ddl(table: Dict[str, Any]) -> str:
    """CREATE TABLE statement for a declarative table definition."""
    parts: List[str] = []
    keys: List[str] = []

    for col in table['columns']:
        definition = f"{col['name']} {col['type']}"
        if 'default' in col:
            definition += f" DEFAULT {col['default']}"
        if col.get('nullable') is False:
            definition += " NOT NULL"
        if col.get('unique'):
            definition += " UNIQUE"
        if col.get('primary_key'):
            keys.append(col['name'])
        parts.append(definition)

    keys.extend(table.get('primary_key') or [])
    if keys:
        parts.append(f"PRIMARY KEY ({', '.join(keys)})")

    return f"CREATE TABLE IF NOT EXISTS {table['name']} ({', '.join(parts)})"

def index_ddl(table: Dict[str, Any], index: Dict[str, Any]) -> str:
    unique = 'UNIQUE ' if index.get('unique') else ''
    return (
        f"CREATE {unique}INDEX IF NOT EXISTS {index['name']} "
        f"ON {table['name']} ({', '.join(index['columns'])})"
    )

class SchemaManager:
    """Brings a database up to the newest schema version."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        """Initialize schema manager.

        Args:
            pool: asyncpg connection pool
            schema_dir: Directory holding the vN.py schema modules
        """
        self.pool = pool
        self.schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0

    def load_schemas(self) -> Dict[int, Schema]:
        """Import every vN.py module, keyed and sorted by version.

        Raises:
            DatabaseSchemaError: A module lacks a schema or declares the wrong version
        """
        schemas: Dict[int, Schema] = {}
        for path in self.schema_dir.glob('v*.py'):
            try:
                version = int(path.stem[1:])
            except ValueError:
                logger.warning(f"Ignoring schema file {path.name}")
                continue

            module = importlib.import_module(f"{SCHEMA_PACKAGE}.{path.stem}")
            schema = getattr(module, 'schema', None)
            if schema is None:
                raise DatabaseSchemaError(f"{path.name} defines no schema")
            if schema.get('version') != version:
                raise DatabaseSchemaError(
                    f"{path.name} declares version {schema.get('version')}, expected {version}"
                )
            schemas[version] = schema

        return dict(sorted(schemas.items()))

    async def initialize(self) -> int:
        """Create or migrate the schema.

        Returns:
            The schema version the database is at afterwards

        Raises:
            DatabaseSchemaError: No schema files exist or a statement failed
        """
        schemas = self.load_schemas()
        if not schemas:
            raise DatabaseSchemaError(f"No schema files in {self.schema_dir}")
        latest = max(schemas)

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    'CREATE TABLE IF NOT EXISTS schema_version ('
                    'version INT8 PRIMARY KEY, applied_at TIMESTAMP NOT NULL DEFAULT now())'
                )
                self.current_version = await conn.fetchval(
                    'SELECT coalesce(max(version), 0) FROM schema_version'
                ) or 0

                if self.current_version >= latest:
                    logger.info(f"Schema is at version {self.current_version}")
                    return self.current_version

                if self.current_version == 0:
                    await self._create(conn, schemas[latest])
                else:
                    for version in range(self.current_version + 1, latest + 1):
                        if version in schemas:
                            await self._migrate(conn, schemas[version])

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema migration failed at version {self.current_version}: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema: {e}") from e

        return self.current_version

    async def _create(self, conn, schema: Schema) -> None:
        async with conn.transaction():
            for table in schema['tables']:
                await conn.execute(table_ddl(table))
                for index in table.get('indexes', []):
                    await conn.execute(index_ddl(table, index))
            await self._record(conn, schema['version'])
        logger.info(f"Created schema version {schema['version']}")

    async def _migrate(self, conn, schema: Schema) -> None:
        async with conn.transaction():
            for statement in schema.get('migrations', []):
                await conn.execute(statement)
            await self._record(conn, schema['version'])
        logger.info(f"Migrated schema to version {schema['version']}")

    async def _record(self, conn, version: int) -> None:
        await conn.execute('INSERT INTO schema_version (version) VALUES ($1)', version)
        self.current_version = version
