"""Admin console calls for whitelist and activation code management"""
from datetime import datetime
from typing import Any, Dict, Optional

from client.http import ConsoleApiClient


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class ActivationAdminClient:

    def __init__(self, api: ConsoleApiClient):
        self.api = api

    async def list_codes(
        self,
        status: Optional[str] = None,
        whitelist_id: Optional[str] = None,
        expiring_within_hours: Optional[int] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        params = _drop_none({
            "status": status,
            "whitelist_id": whitelist_id,
            "expiring_within_hours": expiring_within_hours,
            "limit": limit,
        })
        return await self.api.request_json("GET", "/admin/activation-codes", params=params)

    async def get_code(self, code_id: str) -> Dict[str, Any]:
        return await self.api.request_json("GET", f"/admin/activation-codes/{code_id}")

    async def generate(
        self,
        whitelist_id: str,
        expires_in_hours: Optional[int] = None,
        send_email: bool = False,
        custom_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """The returned `code` is the only copy of the plaintext"""
        payload = _drop_none({
            "whitelist_id": whitelist_id,
            "expires_in_hours": expires_in_hours,
            "send_email": send_email,
            "custom_message": custom_message,
        })
        return await self.api.request_json("POST", "/admin/activation-codes/generate", json=payload)

    async def regenerate(
        self,
        whitelist_id: str,
        expires_in_hours: Optional[int] = None,
        send_email: bool = False,
        custom_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = _drop_none({
            "whitelist_id": whitelist_id,
            "expires_in_hours": expires_in_hours,
            "send_email": send_email,
            "custom_message": custom_message,
        })
        return await self.api.request_json("POST", "/admin/activation-codes/regenerate", json=payload)

    async def revoke(self, code_id: str, reason: str) -> Dict[str, Any]:
        return await self.api.request_json(
            "POST", f"/admin/activation-codes/{code_id}/revoke", json={"reason": reason}
        )

    async def extend(self, code_id: str, additional_hours: int) -> Dict[str, Any]:
        return await self.api.request_json(
            "POST", f"/admin/activation-codes/{code_id}/extend", json={"additional_hours": additional_hours}
        )

    async def resend_email(self, code_id: str, custom_message: Optional[str] = None) -> Dict[str, Any]:
        return await self.api.request_json(
            "POST",
            f"/admin/activation-codes/{code_id}/resend-email",
            json=_drop_none({"custom_message": custom_message}),
        )

    async def list_audit(
        self,
        activation_code_id: Optional[str] = None,
        whitelist_id: Optional[str] = None,
        event_type: Optional[str] = None,
        success: Optional[bool] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        params = _drop_none({
            "activation_code_id": activation_code_id,
            "whitelist_id": whitelist_id,
            "event_type": event_type,
            "success": None if success is None else str(success).lower(),
            "from_date": from_date.isoformat() if from_date else None,
            "to_date": to_date.isoformat() if to_date else None,
            "limit": limit,
        })
        return await self.api.request_json("GET", "/admin/activation-audit", params=params)

    async def stats(self, trend_days: int = 30) -> Dict[str, Any]:
        return await self.api.request_json("GET", "/admin/activation-audit/stats", params={"trend_days": trend_days})

    async def list_whitelist(
        self,
        status: str = "all",
        role: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> Dict[str, Any]:
        params = _drop_none({"status": status, "role": role, "search": search, "limit": limit})
        return await self.api.request_json("GET", "/admin/whitelist", params=params)

    async def create_whitelist_entry(self, **fields) -> Dict[str, Any]:
        return await self.api.request_json("POST", "/admin/whitelist", json=_drop_none(fields))

    async def update_whitelist_entry(self, whitelist_id: str, **changes) -> Dict[str, Any]:
        return await self.api.request_json("PATCH", f"/admin/whitelist/{whitelist_id}", json=changes)

    async def delete_whitelist_entry(self, whitelist_id: str) -> Dict[str, Any]:
        return await self.api.request_json("DELETE", f"/admin/whitelist/{whitelist_id}")

    async def redeem(self, identifier: str, code: str) -> Dict[str, Any]:
        return await self.api.request_json(
            "POST", "/activation/redeem", json={"identifier": identifier, "code": code}
        )
