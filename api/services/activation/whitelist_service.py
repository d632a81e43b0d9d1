import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Union

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.types import ActivationCodeStatus, IdentifierType, UserRole, WhitelistStatus
from config.settings import get_settings
from core.exceptions import ConflictError, NotFoundError, SupervisorRequired, ValidationError
from models.database.activation import ActivationCode, WhitelistEntry
from models.database.user import User
from services.activation.user_directory import UserDirectory
from utils.logging import get_logger
from utils.masking import mask_identifier

logger = get_logger(__name__)
settings = get_settings()

_NON_DIGITS = re.compile(r"[^\d]")
_ID_SEPARATORS = re.compile(r"[\s.\-]")


def normalize_identifier(identifier: str, identifier_type: IdentifierType) -> str:
    """
    Canonical form stored and matched against:
    email lowercased, phone digits with optional leading '+',
    national id uppercased without dots, dashes or spaces.
    """
    value = (identifier or "").strip()
    if not value:
        raise ValidationError("Identifier cannot be empty")

    if identifier_type is IdentifierType.EMAIL:
        value = value.lower()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValidationError("Invalid email identifier")
        return value

    if identifier_type is IdentifierType.PHONE:
        digits = _NON_DIGITS.sub("", value)
        if len(digits) < 7:
            raise ValidationError("Invalid phone identifier")
        return f"+{digits}" if value.startswith("+") else digits

    normalized = _ID_SEPARATORS.sub("", value).upper()
    if len(normalized) < 4:
        raise ValidationError("Invalid national id identifier")
    return normalized


def identifier_candidates(identifier: str) -> Set[str]:
    """Every canonical form a free-text identifier could be stored under"""
    candidates = set()
    for identifier_type in IdentifierType:
        try:
            candidates.add(normalize_identifier(identifier, identifier_type))
        except ValidationError:
            continue
    return candidates


def parse_uuid(value: Union[str, uuid.UUID, None], field: str) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}")


@dataclass
class WhitelistListItem:
    entry: WhitelistEntry
    active_code: Optional[ActivationCode] = None

    @property
    def has_active_code(self) -> bool:
        return self.active_code is not None


class WhitelistService:
    """
    Whitelist management
    - Identifier normalization and uniqueness
    - Supervisor invariant: field agents need an active admin/supervisor,
      other roles carry no supervisor
    """

    def __init__(self, db: AsyncSession, directory: Optional[UserDirectory] = None):
        self.db = db
        self.directory = directory or UserDirectory(db)

    async def resolve_supervisor(self, supervisor_id: Union[str, uuid.UUID, None]) -> User:
        """Active user with role admin or supervisor, else SupervisorRequired"""
        if supervisor_id is None:
            raise SupervisorRequired()

        supervisor = await self.directory.get(parse_uuid(supervisor_id, "supervisor id"))
        if supervisor is None or not supervisor.can_supervise():
            raise SupervisorRequired("Assigned supervisor must be an active admin or supervisor")
        return supervisor

    async def _check_role_invariant(self, role: UserRole, supervisor_id: Optional[uuid.UUID]) -> None:
        if role is UserRole.FIELD_AGENT:
            await self.resolve_supervisor(supervisor_id)
        elif supervisor_id is not None:
            raise ValidationError("Only field agents can have an assigned supervisor")

    async def get(self, whitelist_id: Union[str, uuid.UUID]) -> WhitelistEntry:
        entry = await self.db.get(WhitelistEntry, parse_uuid(whitelist_id, "whitelist id"))
        if entry is None:
            raise NotFoundError("Whitelist entry not found")
        return entry

    async def find_by_identifier(self, identifier: str) -> Optional[WhitelistEntry]:
        candidates = identifier_candidates(identifier)
        if not candidates:
            return None
        result = await self.db.execute(
            select(WhitelistEntry).where(WhitelistEntry.identifier.in_(candidates)).limit(1)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        identifier: str,
        identifier_type: IdentifierType,
        full_name: str,
        assigned_role: UserRole,
        assigned_supervisor_id: Union[str, uuid.UUID, None] = None,
        phone: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> WhitelistEntry:
        normalized = normalize_identifier(identifier, identifier_type)
        if not (full_name or "").strip():
            raise ValidationError("Full name cannot be empty")

        existing = await self.db.execute(select(WhitelistEntry.id).where(WhitelistEntry.identifier == normalized))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Identifier is already whitelisted")

        supervisor_id = parse_uuid(assigned_supervisor_id, "supervisor id")
        await self._check_role_invariant(assigned_role, supervisor_id)

        entry = WhitelistEntry(
            identifier=normalized,
            identifier_type=identifier_type.value,
            full_name=full_name.strip(),
            assigned_role=assigned_role.value,
            assigned_supervisor_id=supervisor_id,
            phone=phone,
            notes=notes,
            created_by=parse_uuid(created_by, "user id"),
        )
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)

        logger.info(
            f"Whitelisted {mask_identifier(normalized)} as {assigned_role.value}",
            extra={"whitelist_id": str(entry.id)}
        )
        return entry

    async def update(self, whitelist_id: Union[str, uuid.UUID], changes: Dict[str, Any]) -> WhitelistEntry:
        """Update mutable fields; the identifier is immutable"""
        entry = await self.get(whitelist_id)

        role = UserRole.parse(changes["assigned_role"]) if changes.get("assigned_role") else entry.role_enum
        if "assigned_supervisor_id" in changes:
            supervisor_id = parse_uuid(changes["assigned_supervisor_id"], "supervisor id")
        else:
            supervisor_id = entry.assigned_supervisor_id
        await self._check_role_invariant(role, supervisor_id)

        if "full_name" in changes:
            if not (changes["full_name"] or "").strip():
                raise ValidationError("Full name cannot be empty")
            entry.full_name = changes["full_name"].strip()
        for field in ("phone", "notes"):
            if field in changes:
                setattr(entry, field, changes[field])
        entry.assigned_role = role.value
        entry.assigned_supervisor_id = supervisor_id

        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def delete(self, whitelist_id: Union[str, uuid.UUID]) -> None:
        """Codes are retained for audit, so only entries that never got one can go"""
        entry = await self.get(whitelist_id)
        if entry.is_activated:
            raise ConflictError("Activated entries cannot be deleted")

        issued = await self.db.execute(
            select(func.count(ActivationCode.id)).where(ActivationCode.whitelist_id == entry.id)
        )
        if issued.scalar_one() > 0:
            raise ConflictError("Entries with issued activation codes cannot be deleted")

        await self.db.delete(entry)
        await self.db.commit()
        logger.info("Whitelist entry removed", extra={"whitelist_id": str(entry.id)})

    async def list(
        self,
        status: WhitelistStatus = WhitelistStatus.ALL,
        role: Optional[UserRole] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WhitelistListItem]:
        limit = settings.activation.audit_default_limit if limit is None else limit
        if not 1 <= limit <= settings.activation.audit_max_limit:
            raise ValidationError(f"limit must be between 1 and {settings.activation.audit_max_limit}")

        query = select(WhitelistEntry)
        if status is WhitelistStatus.ACTIVATED:
            query = query.where(WhitelistEntry.is_activated.is_(True))
        elif status is WhitelistStatus.PENDING:
            query = query.where(WhitelistEntry.is_activated.is_(False))
        if role is not None:
            query = query.where(WhitelistEntry.assigned_role == role.value)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(or_(
                func.lower(WhitelistEntry.identifier).like(pattern),
                func.lower(WhitelistEntry.full_name).like(pattern),
            ))
        query = query.order_by(WhitelistEntry.created_at.desc()).limit(limit)

        entries = list((await self.db.execute(query)).scalars().all())
        if not entries:
            return []

        active = await self.db.execute(
            select(ActivationCode).where(
                ActivationCode.whitelist_id.in_([e.id for e in entries]),
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
            )
        )
        active_by_entry = {code.whitelist_id: code for code in active.scalars().all()}
        return [WhitelistListItem(entry=e, active_code=active_by_entry.get(e.id)) for e in entries]
