"""
Configuration for gridstore.

Uses pydantic-settings for environment variable loading. Every setting can
be overridden with a GRIDSTORE_ prefixed variable, e.g. GRIDSTORE_DATABASE_PATH.

Invariants:
    - All settings have sensible defaults for local development
    - Realm names are configuration, never request input
    - Stores create their tables under the configured realm names
"""

from pydantic import Field
from pydantic_settings import BaseSettings

from .data import AuthenticationStore, FriendsStore, SqliteEngine


class Settings(BaseSettings):
    """gridstore configuration loaded from environment."""

    # SQLite
    database_path: str = Field(default="./gridstore.db", description="SQLite database file")
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL mode")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")
    cache_size_pages: int = Field(default=-64000, description="SQLite cache size (negative = KB)")

    # Realms
    auth_realm: str = Field(default="auth", description="Credentials table")
    tokens_realm: str = Field(default="tokens", description="Session tokens table")
    friends_realm: str = Field(default="Friends", description="Friend edges table")

    # Tokens
    token_sweep_interval: float = Field(
        default=30.0, description="Minimum seconds between expired-token sweeps"
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="text", description="json or text")

    model_config = {"env_prefix": "GRIDSTORE_"}

    def create_engine(self) -> SqliteEngine:
        return SqliteEngine(
            self.database_path,
            wal_mode=self.wal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
            cache_size_pages=self.cache_size_pages,
        )

    def create_auth_store(self, engine: SqliteEngine) -> AuthenticationStore:
        return AuthenticationStore(
            engine,
            realm=self.auth_realm,
            tokens_realm=self.tokens_realm,
            expire_interval=self.token_sweep_interval,
        )

    def create_friends_store(self, engine: SqliteEngine) -> FriendsStore:
        return FriendsStore(engine, realm=self.friends_realm)

    def store_tables(self) -> dict[str, dict[str, str]]:
        """Configured table names per built-in store, for the schema tool."""
        return {
            "AuthStore": {"realm": self.auth_realm, "tokens": self.tokens_realm},
            "FriendsStore": {"realm": self.friends_realm},
        }
