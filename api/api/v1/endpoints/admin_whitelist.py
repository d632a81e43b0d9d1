from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.middleware.auth_middleware import AdminOnly, actor_id, get_request_token
from common.types import UserRole, WhitelistStatus
from config.database import get_db
from core.exceptions import ValidationError
from models.schemas.request.activation import WhitelistCreateRequest, WhitelistUpdateRequest
from models.schemas.responses.activation import OperationResult, WhitelistEntryResponse, WhitelistListResponse
from services.activation.user_directory import UserDirectory
from services.activation.whitelist_service import WhitelistService
from services.session.custodian import SessionCustodian, get_session_custodian

router = APIRouter()


def get_user_directory(
    db: AsyncSession = Depends(get_db),
    token: Optional[str] = Depends(get_request_token),
    custodian: SessionCustodian = Depends(get_session_custodian),
) -> UserDirectory:
    """Supervisor lookups go to the backend with the admin's own token"""
    return UserDirectory(db, backend=custodian.backend, access_token=token)


def get_whitelist_service(
    db: AsyncSession = Depends(get_db),
    directory: UserDirectory = Depends(get_user_directory),
) -> WhitelistService:
    return WhitelistService(db, directory)


@router.get(
    "",
    response_model=WhitelistListResponse,
    operation_id="whitelist_list",
    summary="List whitelist entries",
)
async def list_entries(
    status: WhitelistStatus = Query(WhitelistStatus.ALL),
    role: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    limit: int = Query(100, ge=1, le=500),
    service: WhitelistService = Depends(get_whitelist_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    try:
        role_filter = UserRole.parse(role) if role else None
    except ValueError:
        raise ValidationError(f"Unknown role: {role}")

    items = await service.list(
        status=status,
        role=role_filter,
        search=search,
        limit=limit,
    )
    return WhitelistListResponse(
        items=[WhitelistEntryResponse.from_model(item.entry, item.has_active_code) for item in items],
        total=len(items),
    )


@router.post(
    "",
    response_model=WhitelistEntryResponse,
    status_code=201,
    operation_id="whitelist_create",
    summary="Whitelist an identifier",
)
async def create_entry(
    payload: WhitelistCreateRequest,
    service: WhitelistService = Depends(get_whitelist_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    entry = await service.create(
        identifier=payload.identifier,
        identifier_type=payload.identifier_type,
        full_name=payload.full_name,
        assigned_role=payload.assigned_role,
        assigned_supervisor_id=payload.assigned_supervisor_id,
        phone=payload.phone,
        notes=payload.notes,
        created_by=actor_id(user),
    )
    return WhitelistEntryResponse.from_model(entry, has_active_code=False)


@router.get(
    "/{whitelist_id}",
    response_model=WhitelistEntryResponse,
    operation_id="whitelist_get",
    summary="Get a whitelist entry",
)
async def get_entry(
    whitelist_id: str,
    service: WhitelistService = Depends(get_whitelist_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    return WhitelistEntryResponse.from_model(await service.get(whitelist_id))


@router.patch(
    "/{whitelist_id}",
    response_model=WhitelistEntryResponse,
    operation_id="whitelist_update",
    summary="Update a whitelist entry",
)
async def update_entry(
    whitelist_id: str,
    payload: WhitelistUpdateRequest,
    service: WhitelistService = Depends(get_whitelist_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("assigned_role") is not None:
        changes["assigned_role"] = changes["assigned_role"].value
    return WhitelistEntryResponse.from_model(await service.update(whitelist_id, changes))


@router.delete(
    "/{whitelist_id}",
    response_model=OperationResult,
    operation_id="whitelist_delete",
    summary="Remove a whitelist entry that never received a code",
)
async def delete_entry(
    whitelist_id: str,
    service: WhitelistService = Depends(get_whitelist_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    await service.delete(whitelist_id)
    return OperationResult(success=True, message="Whitelist entry removed")
