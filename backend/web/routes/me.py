"""
Current actor routes: account view, onboarding completion and sign-out.

Why:
    The SPA asks the backend once per session who the caller is and what they
    may do (capabilities + home route) instead of re-deriving roles per page.
"""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Request

from advisory.errors import AdvisoryError, Unauthenticated
from advisory.models import CurrentActor
from identity_access.resolver import extract_bearer

from ..responses import error_response, private_json
from ..wiring import get_services

me_router = APIRouter(tags=["Me"])


def _actor_json(actor: CurrentActor) -> dict:
    return {
        "user_id": actor.user_id,
        "email": actor.email,
        "firm_id": actor.firm_id,
        "role": actor.role,
        "home": actor.home_path,
        "capabilities": {
            "can_invite_client": actor.can_invite_client,
            "can_invite_advisor": actor.can_invite_advisor,
            "can_manage_grants": actor.can_manage_grants,
        },
    }


@me_router.get("/api/me")
async def get_me(request: Request):
    """Profile, firm and capabilities of the caller (settings page)."""
    identity = getattr(request.state, "identity", None)
    try:
        if identity is None:
            raise Unauthenticated("missing_credential")
        account = await asyncio.to_thread(get_services().onboarding.account, identity)
    except AdvisoryError as exc:
        return error_response(exc)
    body = _actor_json(account.actor)
    profile = account.profile
    body.update(
        {
            "first_name": profile.first_name if profile else identity.first_name,
            "last_name": profile.last_name if profile else identity.last_name,
            "firm_name": account.firm_name,
        }
    )
    return private_json(body)


@me_router.post("/api/onboarding/complete")
async def complete_onboarding(request: Request):
    """Ensure a profile exists and return the home route for the caller's role."""
    identity = getattr(request.state, "identity", None)
    try:
        if identity is None:
            raise Unauthenticated("missing_credential")
        actor = await asyncio.to_thread(get_services().onboarding.complete_onboarding, identity)
    except AdvisoryError as exc:
        return error_response(exc)
    body = _actor_json(actor)
    body["success"] = True
    return private_json(body)


@me_router.post("/api/auth/sign-out")
async def sign_out(request: Request):
    """Revoke the caller's session at the provider; always succeeds."""
    try:
        token = extract_bearer(request.headers.get("authorization"))
    except Unauthenticated:
        token = ""
    if token:
        await asyncio.to_thread(get_services().onboarding.sign_out, token)
    return private_json({"success": True})


__all__ = ["me_router"]
