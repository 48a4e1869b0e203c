"""
Client access API routes: list, share, revoke and guarded email lookup.

Permissions:
    - `GET /api/clients`: advisor or owner; returns only granted clients.
    - Roster, share and revoke: caller must hold a grant for the client.
    - Emails: only ids the caller holds grants for are returned.
"""
from __future__ import annotations

import asyncio
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from advisory.errors import AdvisoryError, Unauthenticated
from advisory.models import AdvisorAccess

from ..responses import error_response, private_json
from ..wiring import get_services

access_router = APIRouter(tags=["Access"])


class SharePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    advisor_id: str | None = Field(default=None, alias="advisorId")

    @field_validator("advisor_id")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class ClientEmailsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    client_ids: List[str] = Field(default_factory=list, alias="clientIds")


def _caller_id(request: Request) -> str:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthenticated("missing_credential")
    return identity.id


def _advisor_json(entry: AdvisorAccess) -> dict:
    return {
        "id": entry.user_id,
        "role": entry.role,
        "email": entry.email,
        "first_name": entry.first_name,
        "last_name": entry.last_name,
        "granted_by": entry.granted_by,
        "granted_at": entry.granted_at,
    }


@access_router.get("/api/clients")
async def list_my_clients(request: Request):
    """Clients the caller currently has access to."""
    try:
        caller_id = _caller_id(request)
        clients = await asyncio.to_thread(get_services().roster.my_clients, caller_id)
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "clients": [
                {"id": c.user_id, "email": c.email, "first_name": c.first_name, "last_name": c.last_name}
                for c in clients
            ],
        }
    )


@access_router.post("/api/clients/emails")
async def client_emails(request: Request, payload: ClientEmailsPayload):
    """Resolve emails for the requested client ids the caller may see."""
    try:
        caller_id = _caller_id(request)
        pairs = await asyncio.to_thread(get_services().roster.client_emails, caller_id, payload.client_ids)
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json({"emails": [{"id": cid, "email": email} for cid, email in pairs]})


@access_router.get("/api/clients/{client_id}/access")
async def client_access_roster(request: Request, client_id: str):
    """Firm advisors split into those with and without access to the client."""
    try:
        caller_id = _caller_id(request)
        with_access, without_access = await asyncio.to_thread(
            get_services().roster.client_roster, caller_id, client_id
        )
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "client_id": client_id,
            "with_access": [_advisor_json(e) for e in with_access],
            "without_access": [_advisor_json(e) for e in without_access],
        }
    )


@access_router.post("/api/clients/{client_id}/access")
async def share_client(request: Request, client_id: str, payload: SharePayload):
    """Share a client with another advisor of the same firm.

    Permissions:
        Caller must already hold a grant for the client.
    """
    try:
        caller_id = _caller_id(request)
        grant = await asyncio.to_thread(
            get_services().invitations.share_client, caller_id, client_id, payload.advisor_id or ""
        )
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "client_id": grant.client_id,
            "advisor_id": grant.advisor_id,
            "firm_id": grant.firm_id,
            "granted_by": grant.granted_by,
            "message": "Access granted",
        }
    )


@access_router.delete("/api/clients/{client_id}/access/{advisor_id}")
async def revoke_client_access(request: Request, client_id: str, advisor_id: str):
    """Revoke an advisor's access to a client; succeeds when no grant exists."""
    try:
        caller_id = _caller_id(request)
        removed = await asyncio.to_thread(
            get_services().invitations.revoke_client_access, caller_id, client_id, advisor_id
        )
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "client_id": client_id,
            "advisor_id": advisor_id,
            "removed": removed,
            "message": "Access revoked" if removed else "No access to revoke",
        }
    )


__all__ = ["access_router"]
