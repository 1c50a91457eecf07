"""
Persistence operations used by the REST API and CLI

Every public method opens and closes its own session. Log rows leave this
module as immutable LogEntry models; the other entities are returned as
detached ORM objects.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, delete, func, select

from ..parsers.base import LogEntry, LogTypeDefinition
from ..utils.constants import BLOCKED_ACTIONS, FLAGGED_ACTIONS
from .database import Database
from .models import Company, LogType, LogUpload, ProxyLog, User

logger = logging.getLogger(__name__)

DEFAULT_COMPANY = "dev"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _log_filters(
    company_id: Optional[int] = None,
    action: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> list:
    conditions = []
    if company_id is not None:
        conditions.append(ProxyLog.company_id == company_id)
    if action:
        conditions.append(ProxyLog.action == action.upper())
    if start_date is not None:
        conditions.append(ProxyLog.timestamp >= start_date)
    if end_date is not None:
        conditions.append(ProxyLog.timestamp <= end_date)
    return conditions


class LogStorage:
    """Repository over the proxy log database"""

    def __init__(self, database: Database):
        self.db = database

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        with self.db.session() as session:
            return session.get(User, user_id)

    def upsert_user(self, user_id: str, **fields) -> User:
        with self.db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id, **fields)
                session.add(user)
            else:
                for key, value in fields.items():
                    setattr(user, key, value)
                user.updated_at = _utcnow()
            session.flush()
            return user

    # Companies and log types

    def get_companies(self) -> List[Company]:
        with self.db.session() as session:
            return list(session.scalars(select(Company).order_by(Company.id)))

    def get_company(self, company_id: int) -> Optional[Company]:
        with self.db.session() as session:
            return session.get(Company, company_id)

    def create_company(self, name: str) -> Company:
        with self.db.session() as session:
            company = Company(name=name)
            session.add(company)
            session.flush()
            return company

    def get_log_types(self) -> List[LogType]:
        with self.db.session() as session:
            return list(session.scalars(select(LogType).order_by(LogType.id)))

    def get_log_type(self, log_type_id: int) -> Optional[LogType]:
        with self.db.session() as session:
            return session.get(LogType, log_type_id)

    def initialize_defaults(self, log_types: Iterable[LogTypeDefinition]) -> None:
        """Create the default company and the registered log types if missing"""
        with self.db.session() as session:
            if session.scalar(select(func.count(Company.id))) == 0:
                session.add(Company(name=DEFAULT_COMPANY))
                logger.info(f"Created default company '{DEFAULT_COMPANY}'")

            for definition in log_types:
                if session.get(LogType, definition.id) is None:
                    session.add(LogType(
                        id=definition.id,
                        name=definition.name,
                        table_name=definition.table_name,
                    ))
                    logger.info(f"Registered log type {definition.id}: {definition.name}")

    # Logs

    def get_logs(
        self,
        page: int = 1,
        limit: int = 20,
        company_id: Optional[int] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Tuple[List[LogEntry], int]:
        """Page through logs, newest first

        Returns:
            Tuple of (page of logs, total matching count)
        """
        conditions = _log_filters(company_id, action, start_date, end_date)
        offset = (max(page, 1) - 1) * limit

        with self.db.session() as session:
            rows = session.scalars(
                select(ProxyLog)
                .where(*conditions)
                .order_by(ProxyLog.timestamp.desc(), ProxyLog.id.desc())
                .limit(limit)
                .offset(offset)
            )
            logs = [row.to_entry() for row in rows]
            total = session.scalar(
                select(func.count(ProxyLog.id)).where(*conditions)
            )
        return logs, total or 0

    def find_logs(
        self,
        company_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        """All matching logs in ascending time order

        With ``limit`` only the most recent ``limit`` matches are kept.
        """
        conditions = _log_filters(company_id, None, start_date, end_date)
        query = select(ProxyLog).where(*conditions)

        with self.db.session() as session:
            if limit is None:
                rows = session.scalars(query.order_by(ProxyLog.timestamp, ProxyLog.id))
                return [row.to_entry() for row in rows]

            rows = session.scalars(
                query.order_by(ProxyLog.timestamp.desc(), ProxyLog.id.desc()).limit(limit)
            )
            return [row.to_entry() for row in reversed(list(rows))]

    def get_logs_by_ids(self, log_ids: Sequence[int]) -> List[LogEntry]:
        """Fetch logs in the order the ids were given; unknown ids are skipped"""
        if not log_ids:
            return []
        with self.db.session() as session:
            rows = session.scalars(select(ProxyLog).where(ProxyLog.id.in_(list(set(log_ids)))))
            by_id: Dict[int, LogEntry] = {row.id: row.to_entry() for row in rows}
        return [by_id[log_id] for log_id in log_ids if log_id in by_id]

    def get_recent_logs(self, since: datetime, company_id: Optional[int] = None) -> List[LogEntry]:
        return self.find_logs(company_id=company_id, start_date=since)

    def create_logs(self, entries: Sequence[LogEntry]) -> List[LogEntry]:
        """Insert parsed entries and return them with their assigned ids"""
        with self.db.session() as session:
            rows = [ProxyLog.from_entry(entry) for entry in entries]
            session.add_all(rows)
            session.flush()
            created = [row.to_entry() for row in rows]
        logger.info(f"Stored {len(created)} log records")
        return created

    def delete_all_logs(self) -> int:
        with self.db.session() as session:
            result = session.execute(delete(ProxyLog))
            deleted = result.rowcount or 0
        logger.warning(f"Deleted all logs ({deleted} records)")
        return deleted

    def delete_company_logs(self, company_id: int) -> int:
        with self.db.session() as session:
            result = session.execute(delete(ProxyLog).where(ProxyLog.company_id == company_id))
            deleted = result.rowcount or 0
        logger.warning(f"Deleted {deleted} logs for company {company_id}")
        return deleted

    # Uploads

    def get_uploads(self) -> List[LogUpload]:
        with self.db.session() as session:
            return list(session.scalars(
                select(LogUpload).order_by(LogUpload.created_at.desc(), LogUpload.id.desc())
            ))

    def store_upload(self, entries: Sequence[LogEntry], **fields) -> Tuple[List[LogEntry], LogUpload]:
        """Insert parsed entries and their upload record in one transaction

        `record_count` is filled from the inserted rows. Nothing is stored
        when either insert fails.
        """
        with self.db.session() as session:
            rows = [ProxyLog.from_entry(entry) for entry in entries]
            session.add_all(rows)
            session.flush()
            upload = LogUpload(record_count=len(rows), **fields)
            session.add(upload)
            session.flush()
            created = [row.to_entry() for row in rows]
        logger.info(f"Stored {len(created)} log records for upload {upload.id}")
        return created, upload

    # Aggregates

    def get_log_stats(self, company_id: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
        """Dashboard counters, optionally scoped to one company"""
        now = now or _utcnow()
        conditions = _log_filters(company_id)

        with self.db.session() as session:
            total_logs = session.scalar(select(func.count(ProxyLog.id)).where(*conditions))
            blocked = session.scalar(
                select(func.count(ProxyLog.id)).where(
                    ProxyLog.action.in_(sorted(BLOCKED_ACTIONS)), *conditions
                )
            )
            flagged = session.scalar(
                select(func.count(ProxyLog.id)).where(
                    ProxyLog.action.in_(sorted(FLAGGED_ACTIONS)), *conditions
                )
            )
            unique_ips = session.scalar(
                select(func.count(func.distinct(ProxyLog.source_ip))).where(*conditions)
            )
            recent_uploads = session.scalar(
                select(func.count(LogUpload.id)).where(
                    LogUpload.created_at >= now - timedelta(days=1)
                )
            )
            companies = session.scalar(select(func.count(Company.id)))

        return {
            "totalLogs": total_logs or 0,
            "recentUploads": recent_uploads or 0,
            # Anomalies are detected on demand and never stored
            "anomalies": 0,
            "companies": companies or 0,
            "blockedRequests": blocked or 0,
            "uniqueIPs": unique_ips or 0,
            "highRiskEvents": flagged or 0,
        }

    def get_top_source_ips(self, limit: int = 10, company_id: Optional[int] = None) -> List[Dict]:
        """Most active source IPs with a block-ratio based risk score"""
        event_count = func.count(ProxyLog.id).label("event_count")
        blocked_count = func.sum(
            case((ProxyLog.action.in_(sorted(BLOCKED_ACTIONS)), 1), else_=0)
        ).label("blocked_count")

        with self.db.session() as session:
            rows = session.execute(
                select(ProxyLog.source_ip, event_count, blocked_count)
                .where(*_log_filters(company_id))
                .group_by(ProxyLog.source_ip)
                .order_by(event_count.desc(), ProxyLog.source_ip)
                .limit(limit)
            ).all()

        results = []
        for source_ip, count, blocked in rows:
            if count > 20:
                status = "High Risk"
            elif count > 10:
                status = "Medium Risk"
            else:
                status = "Low Risk"
            results.append({
                "sourceIp": source_ip,
                "eventCount": count,
                "riskScore": round((blocked or 0) / count * 10, 1),
                "status": status,
            })
        return results

    def get_log_timestamp_range(self, company_id: Optional[int] = None) -> Dict:
        with self.db.session() as session:
            earliest, latest, total = session.execute(
                select(
                    func.min(ProxyLog.timestamp),
                    func.max(ProxyLog.timestamp),
                    func.count(ProxyLog.id),
                ).where(*_log_filters(company_id))
            ).one()

        return {
            "earliestTimestamp": earliest,
            "latestTimestamp": latest,
            "totalLogs": total or 0,
        }
