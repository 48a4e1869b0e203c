"""
Invitation API routes: advisors (admin credential) and clients (advisor session).

Why:
    The privileged boundary for the invitation workflows. Each request is
    re-validated server-side: the admin endpoint requires the admin API key,
    the client endpoint derives the firm from the caller's membership.

Security:
    - Request-supplied `firm_id` or `role` fields are ignored (not part of the
      payload models).
    - Responses are private, no-store.
"""
from __future__ import annotations

import asyncio
import logging
import secrets

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from advisory.errors import AdvisoryError, Unauthenticated
from identity_access.resolver import extract_bearer

from .. import config
from ..responses import error_response, private_json
from ..wiring import get_services

logger = logging.getLogger("rollover.web.invitations")

invitations_router = APIRouter(tags=["Invitations"])


class _InvitePayload(BaseModel):
    # Accept camelCase from the SPA and snake_case from tools; drop unknown keys.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")

    @field_validator("email", "first_name", "last_name")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class AdvisorInvitePayload(_InvitePayload):
    firm_name: str | None = Field(default=None, alias="firmName")

    @field_validator("firm_name")
    @classmethod
    def _strip_firm(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class ClientInvitePayload(_InvitePayload):
    pass


def _require_admin(request: Request) -> None:
    """Check `Authorization: Bearer <ADMIN_API_KEY>`; fail closed when no key is configured."""
    expected = config.admin_api_key()
    if not expected:
        raise Unauthenticated("admin_key_not_configured")
    presented = extract_bearer(request.headers.get("authorization"))
    if not secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthenticated("invalid_credential")


@invitations_router.post("/api/admin/invitations/advisor")
async def invite_advisor(request: Request, payload: AdvisorInvitePayload):
    """Invite an advisor to a firm, creating the firm on first use.

    Permissions:
        Admin API key only. The first advisor of a new firm becomes its owner.
    """
    try:
        _require_admin(request)
        svc = get_services()
        actor = svc.guard.system_actor()
        result = await asyncio.to_thread(
            svc.invitations.invite_advisor,
            payload.email,
            payload.first_name,
            payload.last_name,
            payload.firm_name,
            actor=actor,
        )
    except AdvisoryError as exc:
        if exc.kind == "unauthenticated":
            logger.warning("Admin invitation rejected: %s", exc.code)
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "user_id": result.user_id,
            "firm_id": result.firm_id,
            "role": result.role,
            "firm_created": result.firm_created,
            "requires_invite": result.requires_invite,
            "message": result.message,
        }
    )


@invitations_router.post("/api/invitations/client")
async def invite_client(request: Request, payload: ClientInvitePayload):
    """Invite a client into the caller's firm and grant the caller access.

    Permissions:
        Caller must be an advisor or owner.
    """
    identity = getattr(request.state, "identity", None)
    try:
        if identity is None:
            raise Unauthenticated("missing_credential")
        svc = get_services()
        result = await asyncio.to_thread(
            svc.invitations.invite_client,
            identity.id,
            payload.email,
            payload.first_name,
            payload.last_name,
        )
    except AdvisoryError as exc:
        return error_response(exc)
    return private_json(
        {
            "success": True,
            "client_id": result.user_id,
            "firm_id": result.firm_id,
            "requires_invite": result.requires_invite,
            "message": result.message,
        }
    )


__all__ = ["invitations_router"]
