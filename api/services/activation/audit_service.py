"""
Read-only projection of the activation audit trail.
Entries are appended by the lifecycle manager only.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.types import AuditEventType
from config.settings import get_settings
from core.exceptions import ValidationError
from models.database.activation import ActivationAuditLog
from services.activation.whitelist_service import parse_uuid
from utils.datetime_utils import DateTimeManager

settings = get_settings()


@dataclass
class AuditFilter:
    activation_code_id: Union[str, uuid.UUID, None] = None
    whitelist_id: Union[str, uuid.UUID, None] = None
    event_type: Optional[AuditEventType] = None
    success: Optional[bool] = None
    ip_address: Optional[str] = None
    actor_user_id: Union[str, uuid.UUID, None] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: Optional[int] = None


@dataclass
class AuditListResult:
    items: List[ActivationAuditLog]
    summary: Dict[str, Any]


class ActivationAuditService:

    def __init__(self, db: AsyncSession):
        self.db = db

    def _conditions(self, audit_filter: AuditFilter) -> list:
        conditions = []
        if audit_filter.activation_code_id is not None:
            conditions.append(
                ActivationAuditLog.activation_code_id == parse_uuid(audit_filter.activation_code_id, "activation code id")
            )
        if audit_filter.whitelist_id is not None:
            conditions.append(ActivationAuditLog.whitelist_id == parse_uuid(audit_filter.whitelist_id, "whitelist id"))
        if audit_filter.event_type is not None:
            conditions.append(ActivationAuditLog.event_type == audit_filter.event_type.value)
        if audit_filter.success is not None:
            conditions.append(ActivationAuditLog.success.is_(audit_filter.success))
        if audit_filter.ip_address:
            conditions.append(ActivationAuditLog.ip_address == audit_filter.ip_address)
        if audit_filter.actor_user_id is not None:
            conditions.append(ActivationAuditLog.actor_user_id == parse_uuid(audit_filter.actor_user_id, "user id"))
        if audit_filter.from_date is not None:
            conditions.append(ActivationAuditLog.created_at >= DateTimeManager.ensure_utc(audit_filter.from_date))
        if audit_filter.to_date is not None:
            conditions.append(ActivationAuditLog.created_at <= DateTimeManager.ensure_utc(audit_filter.to_date))
        return conditions

    async def list(self, audit_filter: Optional[AuditFilter] = None) -> AuditListResult:
        """Entries newest first plus a summary over everything the filter matches"""
        audit_filter = audit_filter or AuditFilter()
        cfg = settings.activation
        limit = cfg.audit_default_limit if audit_filter.limit is None else audit_filter.limit
        if not 1 <= limit <= cfg.audit_max_limit:
            raise ValidationError(f"limit must be between 1 and {cfg.audit_max_limit}")
        if audit_filter.from_date and audit_filter.to_date and audit_filter.from_date > audit_filter.to_date:
            raise ValidationError("from_date must not be after to_date")

        conditions = self._conditions(audit_filter)

        items_result = await self.db.execute(
            select(ActivationAuditLog)
            .where(*conditions)
            .order_by(ActivationAuditLog.created_at.desc(), ActivationAuditLog.id.desc())
            .limit(limit)
        )
        items = list(items_result.scalars().all())

        summary_row = (await self.db.execute(
            select(
                func.count(ActivationAuditLog.id),
                func.count(ActivationAuditLog.id).filter(ActivationAuditLog.success.is_(True)),
                func.count(func.distinct(ActivationAuditLog.ip_address)),
                func.min(ActivationAuditLog.created_at),
                func.max(ActivationAuditLog.created_at),
            ).where(*conditions)
        )).one()
        total, successful, unique_ips, first_at, last_at = summary_row

        return AuditListResult(
            items=items,
            summary={
                "total_events": total,
                "successful_events": successful,
                "failed_events": total - successful,
                "unique_ips": unique_ips,
                "date_range": {
                    "from": DateTimeManager.ensure_utc(first_at),
                    "to": DateTimeManager.ensure_utc(last_at),
                },
            },
        )
