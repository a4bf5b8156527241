# linkwatch/store.py
import json
import sqlite3
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from linkwatch.schemas import Outage, OutageStats, PathTraceResult, ProbeOutcome

SCHEMA = """
CREATE TABLE IF NOT EXISTS outages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    start_time TEXT NOT NULL,
    end_time TEXT,
    duration_secs REAL,
    affected_endpoints TEXT NOT NULL,
    failing_hop INTEGER,
    failing_hop_address TEXT,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS ping_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    endpoint_address TEXT NOT NULL,
    endpoint_name TEXT NOT NULL,
    latency_ms REAL,
    success INTEGER NOT NULL,
    failure_reason TEXT
);

CREATE TABLE IF NOT EXISTS traceroutes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    outage_id INTEGER REFERENCES outages(id),
    timestamp TEXT NOT NULL,
    target TEXT NOT NULL,
    hops TEXT NOT NULL,
    reached_target INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_outages_start_time ON outages(start_time);
CREATE INDEX IF NOT EXISTS idx_ping_log_timestamp ON ping_log(timestamp);
"""


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


class OutageStore:
    """SQLite record of outages, sampled pings and diagnostic traces."""

    def __init__(self, path: Union[str, Path] = ":memory:"):
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(path))
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)

    def close(self) -> None:
        self.conn.close()

    def insert_outage(self, outage: Outage) -> int:
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO outages (start_time, end_time, duration_secs, affected_endpoints,"
                " failing_hop, failing_hop_address, notes) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    _iso(outage.start_time),
                    _iso(outage.end_time),
                    outage.duration_secs,
                    json.dumps(list(outage.affected_endpoints)),
                    outage.failing_hop,
                    outage.failing_hop_address,
                    outage.notes,
                ),
            )
        outage.id = cur.lastrowid
        return outage.id

    def update_outage(self, outage: Outage) -> None:
        if outage.id is None:
            raise ValueError("cannot update an outage that was never inserted")
        with self.conn:
            self.conn.execute(
                "UPDATE outages SET end_time = ?, duration_secs = ?, affected_endpoints = ?,"
                " failing_hop = ?, failing_hop_address = ?, notes = ? WHERE id = ?",
                (
                    _iso(outage.end_time),
                    outage.duration_secs,
                    json.dumps(list(outage.affected_endpoints)),
                    outage.failing_hop,
                    outage.failing_hop_address,
                    outage.notes,
                    outage.id,
                ),
            )

    def insert_ping(self, outcome: ProbeOutcome) -> None:
        with self.conn:
            self.conn.execute(
                "INSERT INTO ping_log (timestamp, endpoint_address, endpoint_name, latency_ms,"
                " success, failure_reason) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    _iso(outcome.timestamp),
                    outcome.endpoint_address,
                    outcome.endpoint_name,
                    outcome.latency_ms,
                    int(outcome.success),
                    outcome.failure_reason,
                ),
            )

    def insert_trace(self, outage_id: Optional[int], result: PathTraceResult) -> int:
        hops = result.to_dict()["hops"]
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO traceroutes (outage_id, timestamp, target, hops, reached_target)"
                " VALUES (?, ?, ?, ?, ?)",
                (outage_id, _iso(result.timestamp), result.target,
                 json.dumps(hops), int(result.reached_target)),
            )
        return cur.lastrowid

    def recent_outages(self, since: datetime, until: Optional[datetime] = None) -> list[Outage]:
        until = until or datetime.now(timezone.utc)
        rows = self.conn.execute(
            "SELECT * FROM outages WHERE start_time >= ? AND start_time <= ? ORDER BY start_time DESC",
            (since.isoformat(), until.isoformat()),
        ).fetchall()
        return [self._row_to_outage(r) for r in rows]

    def ongoing_outage(self) -> Optional[Outage]:
        row = self.conn.execute(
            "SELECT * FROM outages WHERE end_time IS NULL ORDER BY start_time DESC LIMIT 1"
        ).fetchone()
        return self._row_to_outage(row) if row is not None else None

    def stats(self, since: datetime, until: datetime) -> OutageStats:
        """
        Outage totals for outages starting in [since, until]. Open outages
        count towards total_outages but contribute no downtime.
        """
        outages = self.recent_outages(since, until)
        total = len(outages)
        downtime = sum(o.duration_secs for o in outages if o.duration_secs is not None)

        period_secs = (until - since).total_seconds()
        if period_secs > 0:
            availability = (period_secs - downtime) / period_secs * 100.0
        else:
            availability = 100.0

        hops = Counter(o.failing_hop for o in outages if o.failing_hop is not None)
        return OutageStats(
            period_start=since,
            period_end=until,
            total_outages=total,
            total_downtime_secs=downtime,
            availability_percent=availability,
            avg_outage_duration_secs=downtime / total if total else None,
            most_common_failing_hop=hops.most_common(1)[0][0] if hops else None,
        )

    @staticmethod
    def _row_to_outage(row: sqlite3.Row) -> Outage:
        return Outage(
            id=row["id"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]) if row["end_time"] else None,
            duration_secs=row["duration_secs"],
            affected_endpoints=tuple(json.loads(row["affected_endpoints"])),
            failing_hop=row["failing_hop"],
            failing_hop_address=row["failing_hop_address"],
            notes=row["notes"],
        )
