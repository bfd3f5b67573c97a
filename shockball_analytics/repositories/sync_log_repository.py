"""
Sync audit log repository.

One row per poll or replay fetch. The latest successful (HTTP 200) row per
endpoint supplies the conditional token for the next request to it.
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func

from shockball_analytics.models import SyncLog
from shockball_analytics.repositories.base import BaseRepository


class SyncLogRepository(BaseRepository[SyncLog]):
    """Repository for ``sync_log`` rows."""

    def __init__(self, db):
        super().__init__(SyncLog, db)

    def record(
        self,
        endpoint: str,
        http_status: int,
        last_modified: Optional[str] = None,
        matches_found: int = 0,
        matches_new: int = 0,
        error: Optional[str] = None,
    ) -> SyncLog:
        entry = SyncLog(
            endpoint=endpoint,
            fetched_at=datetime.utcnow(),
            http_status=http_status,
            last_modified=last_modified,
            matches_found=matches_found,
            matches_new=matches_new,
            error=error,
        )
        self.db.add(entry)
        return entry

    def get_last_modified(self, endpoint: str) -> Optional[str]:
        """Token from the newest successful fetch of ``endpoint``, if any."""
        latest = self.db.query(SyncLog).filter(
            SyncLog.endpoint == endpoint,
            SyncLog.http_status == 200,
        ).order_by(SyncLog.fetched_at.desc(), SyncLog.id.desc()).first()
        return latest.last_modified if latest else None

    def recent(self, limit: int = 20) -> List[SyncLog]:
        return self.db.query(SyncLog).order_by(
            SyncLog.fetched_at.desc(), SyncLog.id.desc()
        ).limit(limit).all()

    def latest_per_endpoint(self, endpoints: List[str]) -> Dict[str, SyncLog]:
        """Newest row for each of ``endpoints`` (missing endpoints are omitted)."""
        newest = self.db.query(
            SyncLog.endpoint, func.max(SyncLog.id).label("max_id")
        ).filter(SyncLog.endpoint.in_(endpoints)).group_by(SyncLog.endpoint).subquery()

        rows = self.db.query(SyncLog).join(newest, SyncLog.id == newest.c.max_id).all()
        return {row.endpoint: row for row in rows}
