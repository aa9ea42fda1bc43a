from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request

from ..services.payments import handle_stripe_webhook
from ..settings import Settings, get_settings

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    settings: Settings = Depends(get_settings),
):
    # signature is computed over the raw bytes, so read them untouched
    raw = await request.body()
    return await handle_stripe_webhook(settings, raw, stripe_signature)
