"""
audit/store.py -- Request audit log and the admin stats view built on it.

The request middleware in api/main.py writes one row per /api/ request.
stats() aggregates the last 24h / 7d / 30d for the admin console: total
requests, top endpoints, top callers, error rate, and average latency.

This is adjacent to the authorization core: nothing here decides access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from sqlalchemy import case, func, select
from sqlalchemy.engine import Engine

from core.db import Clock, api_audit_log, to_iso, utcnow

_TOP_N = 20


class StatsPeriod(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"


_PERIOD_SPAN: dict[StatsPeriod, timedelta] = {
    StatsPeriod.DAY: timedelta(hours=24),
    StatsPeriod.WEEK: timedelta(days=7),
    StatsPeriod.MONTH: timedelta(days=30),
}


@dataclass
class AdminStats:
    period: str
    total_requests: int = 0
    requests_by_endpoint: dict[str, int] = field(default_factory=dict)
    requests_by_user: dict[str, int] = field(default_factory=dict)
    error_rate: float = 0.0
    avg_response_time_ms: float = 0.0


class AuditLog:
    def __init__(self, engine: Engine, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def record(
        self,
        method: str,
        endpoint: str,
        identity_id: str | None,
        response_code: int,
        processing_time_ms: float,
    ) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                api_audit_log.insert().values(
                    method=method,
                    endpoint=endpoint[:255],
                    discord_user_id=identity_id,
                    response_code=response_code,
                    processing_time_ms=int(round(processing_time_ms)),
                    created_at=to_iso(self._clock()),
                )
            )
            conn.commit()

    def stats(self, period: StatsPeriod = StatsPeriod.DAY) -> AdminStats:
        """Aggregate the audit log over the given window."""
        since = to_iso(self._clock() - _PERIOD_SPAN[period])
        in_window = api_audit_log.c.created_at >= since

        totals_stmt = select(
            func.count().label("total"),
            func.coalesce(func.sum(case((api_audit_log.c.response_code >= 400, 1), else_=0)), 0).label("errors"),
            func.coalesce(func.avg(api_audit_log.c.processing_time_ms), 0).label("avg_ms"),
        ).where(in_window)

        count = func.count().label("request_count")
        by_endpoint_stmt = (
            select(api_audit_log.c.endpoint, count)
            .where(in_window)
            .group_by(api_audit_log.c.endpoint)
            .order_by(count.desc(), api_audit_log.c.endpoint)
            .limit(_TOP_N)
        )
        by_user_stmt = (
            select(api_audit_log.c.discord_user_id, count)
            .where(in_window, api_audit_log.c.discord_user_id.is_not(None))
            .group_by(api_audit_log.c.discord_user_id)
            .order_by(count.desc(), api_audit_log.c.discord_user_id)
            .limit(_TOP_N)
        )

        with self.engine.connect() as conn:
            totals = conn.execute(totals_stmt).one()
            by_endpoint = conn.execute(by_endpoint_stmt).fetchall()
            by_user = conn.execute(by_user_stmt).fetchall()

        total = int(totals.total or 0)
        errors = int(totals.errors or 0)
        return AdminStats(
            period=period.value,
            total_requests=total,
            requests_by_endpoint={row.endpoint: int(row.request_count) for row in by_endpoint},
            requests_by_user={row.discord_user_id: int(row.request_count) for row in by_user},
            error_rate=errors / total if total > 0 else 0.0,
            avg_response_time_ms=round(float(totals.avg_ms or 0), 2),
        )
