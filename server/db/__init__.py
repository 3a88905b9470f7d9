"""
Collector Server - Database Module

SQLite storage for collector metrics. Every operation opens its own
connection so concurrent connection handlers never share one.
"""

import math
from typing import Dict, List, Optional

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)

# SQLite integers are signed 64-bit; u64 values are stored two's-complement
U64_WRAP = 2 ** 64
I64_MAX = 2 ** 63 - 1


def to_i64(value: int) -> int:
    return value - U64_WRAP if value > I64_MAX else value


def from_i64(value: int) -> int:
    return value + U64_WRAP if value < 0 else value


def _cpu_column(value: float) -> Optional[float]:
    return None if math.isnan(value) else value


class MetricsStore:
    """Timeseries rows written by the collector server, read by the API."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _connect(self):
        return aiosqlite.connect(self.db_path, timeout=30.0)

    async def init(self) -> None:
        """Create the schema if it does not exist."""
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS timeseries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    collector_id TEXT NOT NULL,
                    received INTEGER NOT NULL,
                    total_memory INTEGER NOT NULL,
                    used_memory INTEGER NOT NULL,
                    average_cpu REAL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_timeseries_collector
                ON timeseries(collector_id, received)
            """)

            await db.commit()

        logger.info("Metrics database initialized", path=self.db_path)

    async def insert(
        self,
        collector_id: str,
        received: int,
        total_memory: int,
        used_memory: int,
        average_cpu: float,
    ) -> None:
        """Store one metric snapshot.

        Raises:
            aiosqlite.Error: the row could not be written.
        """
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO timeseries (collector_id, received, total_memory, used_memory, average_cpu)
                VALUES (?, ?, ?, ?, ?)
                """,
                (collector_id, received, to_i64(total_memory), to_i64(used_memory), _cpu_column(average_cpu)),
            )
            await db.commit()

    async def all_rows(self) -> List[Dict]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM timeseries ORDER BY id")
            rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    async def collectors(self) -> List[Dict]:
        """One entry per collector with the newest receive time."""
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("""
                SELECT collector_id, MAX(received) AS last_seen, COUNT(*) AS samples
                FROM timeseries
                GROUP BY collector_id
                ORDER BY last_seen DESC
            """)
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def rows_for(self, collector_id: str) -> List[Dict]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM timeseries WHERE collector_id = ? ORDER BY received, id",
                (collector_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]


def _row_to_dict(row) -> Dict:
    data = dict(row)
    data["total_memory"] = from_i64(data["total_memory"])
    data["used_memory"] = from_i64(data["used_memory"])
    return data
