"""
Base repository for the embedded SQLite store.
"""
import asyncio
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, TypeVar, Union

from symbol_catalog.config import Config
from symbol_catalog.errors import StoreUnavailable
from symbol_catalog.utils.logger import get_logger


T = TypeVar("T")


class BaseRepository:
    """
    Base repository class over one SQLite database file.

    Every operation opens its own connection in a worker thread, so readers
    never share a connection with a writer. All repositories should inherit
    from this.
    """

    def __init__(self, config: Config, path: Optional[Union[str, Path]] = None):
        """
        Initialize repository with configuration.

        Args:
            config: Configuration object
            path: Database file; defaults to config.db_path
        """
        self.config = config
        self.path = Path(path) if path is not None else config.db_path
        self.logger = get_logger(__name__)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def connect(self, create: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Open a connection in autocommit mode; transactions are explicit.

        Args:
            create: Create the file (and parent directory) when missing

        Raises:
            StoreUnavailable: the file is missing and create is False, or
                              SQLite cannot open it
        """
        if create:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        elif not self.path.exists():
            raise StoreUnavailable(f"Symbol database not found at {self.path}")

        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self.config.store.busy_timeout,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open symbol database {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        # SQLite folds ASCII only; search matches on str.casefold
        conn.create_function("casefold", 1, str.casefold, deterministic=True)
        try:
            yield conn
        finally:
            conn.close()

    def _call(self, fn: Callable[..., T], args: tuple, create: bool) -> T:
        try:
            with self.connect(create=create) as conn:
                return fn(conn, *args)
        except sqlite3.Error as exc:
            # Locked, corrupt ("file is not a database") or unwritable
            raise StoreUnavailable(f"Symbol database {self.path} unavailable: {exc}") from exc

    async def run(self, fn: Callable[..., T], *args, create: bool = False) -> T:
        """
        Run fn(conn, *args) on a fresh connection in a worker thread.

        Args:
            fn: Callable receiving the connection first
            create: Allow creating the database file
        """
        return await asyncio.to_thread(self._call, fn, args, create)

    async def execute(self, query: str, *args) -> int:
        """
        Execute a statement that doesn't return results.

        Returns:
            Number of affected rows
        """
        return await self.run(lambda conn: conn.execute(query, args).rowcount)

    async def fetch(self, query: str, *args) -> List[sqlite3.Row]:
        """
        Fetch multiple rows.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            List of rows
        """
        return await self.run(lambda conn: conn.execute(query, args).fetchall())

    async def fetchrow(self, query: str, *args) -> Optional[sqlite3.Row]:
        """
        Fetch a single row.

        Returns:
            Single row or None
        """
        return await self.run(lambda conn: conn.execute(query, args).fetchone())

    async def fetchval(self, query: str, *args) -> Any:
        """
        Fetch a single value.

        Returns:
            First column of the first row, or None
        """
        row = await self.fetchrow(query, *args)
        return row[0] if row is not None else None
