"""
Symbol repository - reconciliation writes and read queries for the symbols table.
"""
import sqlite3
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from symbol_catalog.models.crawl import ReconcileSummary
from symbol_catalog.models.symbol import Symbol, merge_symbol
from symbol_catalog.repositories.base_repository import BaseRepository
from symbol_catalog.taxonomy import AssetClass, Category, CrawlFilter, Exchange, is_wildcard


SCHEMA = """
    CREATE TABLE IF NOT EXISTS symbols (
        ticker TEXT NOT NULL,
        exchange TEXT NOT NULL,
        name TEXT NOT NULL DEFAULT '' COLLATE NOCASE,
        asset_class TEXT NOT NULL,
        category TEXT NOT NULL,
        type_code TEXT NOT NULL DEFAULT '',
        first_seen TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (ticker, exchange)
    );
    CREATE INDEX IF NOT EXISTS idx_symbols_ticker_nocase ON symbols (ticker COLLATE NOCASE);
    CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols (name);
    CREATE INDEX IF NOT EXISTS idx_symbols_taxonomy ON symbols (asset_class, category, exchange);
"""

COLUMNS = "ticker, exchange, name, asset_class, category, type_code, first_seen, updated_at"

Key = Tuple[str, str]
Row = Tuple[str, str, str, str, str, str]


def _label(value: Union[Enum, str], enum_cls=None) -> str:
    """Stored label for a filter value given as an enum member or a string."""
    if isinstance(value, Enum):
        return value.value
    if enum_cls is not None:
        try:
            return enum_cls(value).value
        except ValueError:
            if enum_cls is not Exchange:
                raise
    return str(value).strip()


class SymbolRepository(BaseRepository):
    """Repository for the symbols table: whole-crawl reconciliation plus lookups"""

    async def ensure_schema(self) -> None:
        """Create the database file, table and indexes if missing."""
        def create(conn: sqlite3.Connection):
            # WAL lets readers keep a consistent snapshot during reconciliation
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

        await self.run(create, create=True)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(
        self,
        candidates: Iterable[Symbol],
        *,
        prune: bool = False,
        scope: Optional[CrawlFilter] = None,
    ) -> ReconcileSummary:
        """
        Apply a crawl's candidate set to the store in one transaction.

        New keys are inserted and changed keys updated. Stored keys missing
        from the candidates are kept, unless prune is set, in which case those
        inside scope are deleted.

        Args:
            candidates: Symbols from a crawl; duplicate keys merge first-writer-wins
            prune: Delete stored keys absent from candidates
            scope: Limits pruning to rows matching this filter (default: all rows)

        Returns:
            ReconcileSummary counts

        Raises:
            StoreUnavailable: the transaction could not be committed; nothing
                              was written
        """
        merged: Dict[Key, Symbol] = {}
        for symbol in candidates:
            merge_symbol(merged, symbol)

        await self.ensure_schema()
        summary = await self.run(self._reconcile, merged, prune, scope or CrawlFilter())
        self.logger.info(
            "Reconciled %s candidates: inserted=%s updated=%s unchanged=%s deleted=%s retained=%s",
            len(merged), summary.inserted, summary.updated, summary.unchanged,
            summary.deleted, summary.retained,
        )
        return summary

    def _reconcile(
        self,
        conn: sqlite3.Connection,
        candidates: Dict[Key, Symbol],
        prune: bool,
        scope: CrawlFilter,
    ) -> ReconcileSummary:
        now = datetime.now(timezone.utc).isoformat()
        summary = ReconcileSummary()

        conn.execute("BEGIN IMMEDIATE")
        try:
            existing: Dict[Key, Row] = {
                (row[0], row[1]): tuple(row)
                for row in conn.execute(
                    "SELECT ticker, exchange, name, asset_class, category, type_code FROM symbols"
                )
            }

            inserts: List[tuple] = []
            updates: List[tuple] = []
            for key, symbol in candidates.items():
                row = symbol.to_row()
                current = existing.get(key)
                if current is None:
                    inserts.append(row + (now, now))
                elif current != row:
                    updates.append(row[2:] + (now,) + key)
                else:
                    summary.unchanged += 1

            deletes: List[Key] = []
            for key, row in existing.items():
                if key in candidates:
                    continue
                if prune and scope.matches_values(row[3], row[4], row[1]):
                    deletes.append(key)
                else:
                    summary.retained += 1

            self._write(conn, inserts, updates, deletes)
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

        summary.inserted = len(inserts)
        summary.updated = len(updates)
        summary.deleted = len(deletes)
        return summary

    @staticmethod
    def _write(
        conn: sqlite3.Connection,
        inserts: Sequence[tuple],
        updates: Sequence[tuple],
        deletes: Sequence[Key],
    ) -> None:
        conn.executemany(
            f"INSERT INTO symbols ({COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            inserts,
        )
        conn.executemany(
            """
            UPDATE symbols
            SET name = ?, asset_class = ?, category = ?, type_code = ?, updated_at = ?
            WHERE ticker = ? AND exchange = ?
            """,
            updates,
        )
        conn.executemany("DELETE FROM symbols WHERE ticker = ? AND exchange = ?", deletes)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_symbols(
        self,
        asset_class: Union[AssetClass, str] = AssetClass.ALL,
        category: Union[Category, str] = Category.ALL,
        exchange: Union[Exchange, str] = Exchange.ALL,
    ) -> List[Symbol]:
        """
        List symbols matching every non-wildcard field exactly.

        Args:
            asset_class: Asset class or ALL
            category: Category or ALL
            exchange: Exchange (or raw exchange label) or ALL

        Returns:
            Matching symbols ordered by ticker; empty when nothing matches
        """
        conditions, params = self._taxonomy_conditions(asset_class, category, exchange)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = await self.fetch(
            f"SELECT {COLUMNS} FROM symbols {where} ORDER BY ticker, exchange",
            *params,
        )
        return [Symbol(**dict(row)) for row in rows]

    async def search(
        self,
        keyword: str,
        asset_class: Union[AssetClass, str] = AssetClass.ALL,
    ) -> List[Symbol]:
        """
        Find symbols whose ticker or name contains keyword, ignoring case.

        Case is folded in full Unicode, so accented names match too.

        Args:
            keyword: Substring to look for
            asset_class: Restrict to one asset class, or ALL

        Returns:
            Matching symbols ordered by ticker; empty when nothing matches
        """
        needle = keyword.strip().casefold()
        conditions, params = self._taxonomy_conditions(asset_class, Category.ALL, Exchange.ALL)
        conditions.append("(instr(casefold(ticker), ?) > 0 OR instr(casefold(name), ?) > 0)")
        params.extend([needle, needle])
        rows = await self.fetch(
            f"SELECT {COLUMNS} FROM symbols WHERE {' AND '.join(conditions)} ORDER BY ticker, exchange",
            *params,
        )
        return [Symbol(**dict(row)) for row in rows]

    async def get_symbol(self, ticker: str, exchange: Optional[Union[Exchange, str]] = None) -> Optional[Symbol]:
        """
        Get a symbol by ticker and optionally exchange.

        Without an exchange the first listing by exchange label is returned.
        """
        if exchange is None or is_wildcard(exchange):
            row = await self.fetchrow(
                f"SELECT {COLUMNS} FROM symbols WHERE ticker = ? ORDER BY exchange LIMIT 1",
                ticker.strip(),
            )
        else:
            row = await self.fetchrow(
                f"SELECT {COLUMNS} FROM symbols WHERE ticker = ? AND exchange = ?",
                ticker.strip(),
                _label(exchange, Exchange),
            )
        if row:
            return Symbol(**dict(row))
        return None

    async def count(self) -> int:
        """Return the number of stored symbols."""
        return await self.fetchval("SELECT COUNT(*) FROM symbols") or 0

    async def distinct_asset_classes(self) -> List[str]:
        return await self._distinct("asset_class")

    async def distinct_categories(self) -> List[str]:
        return await self._distinct("category")

    async def distinct_exchanges(self) -> List[str]:
        return await self._distinct("exchange")

    async def _distinct(self, column: str) -> List[str]:
        rows = await self.fetch(f"SELECT DISTINCT {column} FROM symbols ORDER BY {column}")
        return [row[0] for row in rows]

    @staticmethod
    def _taxonomy_conditions(asset_class, category, exchange) -> Tuple[List[str], List[str]]:
        conditions: List[str] = []
        params: List[str] = []
        if not is_wildcard(asset_class):
            conditions.append("asset_class = ?")
            params.append(_label(asset_class, AssetClass))
        if not is_wildcard(category):
            conditions.append("category = ?")
            params.append(_label(category, Category))
        if not is_wildcard(exchange):
            conditions.append("exchange = ?")
            params.append(_label(exchange, Exchange))
        return conditions, params
