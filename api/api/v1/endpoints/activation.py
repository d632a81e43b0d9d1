"""
Public activation endpoint.
Failure messages do not reveal whether an identifier is whitelisted.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from models.schemas.request.activation import RedeemCodeRequest
from models.schemas.responses.activation import RedeemCodeResponse
from services.activation.lifecycle_service import ActivationCodeManager
from utils.request_utils import get_client_ip, get_user_agent

router = APIRouter()


def get_redemption_manager(db: AsyncSession = Depends(get_db)) -> ActivationCodeManager:
    return ActivationCodeManager(db)


@router.post(
    "/redeem",
    response_model=RedeemCodeResponse,
    operation_id="activation_redeem",
    summary="Redeem an activation code",
)
async def redeem_code(
    payload: RedeemCodeRequest,
    request: Request,
    manager: ActivationCodeManager = Depends(get_redemption_manager),
):
    result = await manager.redeem(
        payload.identifier,
        payload.code,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    entry = result.whitelist_entry
    return RedeemCodeResponse(
        whitelist_id=str(entry.id),
        full_name=entry.full_name,
        assigned_role=entry.assigned_role,
        assigned_supervisor_id=str(entry.assigned_supervisor_id) if entry.assigned_supervisor_id else None,
        activated_at=result.activated_at,
    )
