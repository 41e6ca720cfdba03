"""Database error types."""

class DatabaseError(Exception):
    """Base exception for database operations."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass
