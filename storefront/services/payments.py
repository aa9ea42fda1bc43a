# storefront/services/payments.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from fastapi.concurrency import run_in_threadpool

from .. import db
from ..errors import BusinessRuleError, ForbiddenError, NotFoundError, ServiceUnavailableError, ValidationError
from ..models import OrderStatus, PaymentMethod, PaymentStatus, TERMINAL_STATUSES
from ..settings import Settings

logger = logging.getLogger(__name__)


def _cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


async def create_payment_intent(settings: Settings, order_id: str, user_id: Optional[str]) -> Dict[str, Any]:
    """Open a Stripe PaymentIntent for a pending stripe order."""
    if not settings.stripe_secret_key:
        raise ServiceUnavailableError("Payments not configured")

    async with db.unit_of_work() as repo:
        order = await repo.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found", field="id")
    if order.user_id != user_id:
        raise ForbiddenError("Not authorized to pay for this order")
    if order.payment_method is not PaymentMethod.STRIPE:
        raise BusinessRuleError("Order is not paid through Stripe", field="paymentMethod")
    if order.payment_status is PaymentStatus.PAID:
        raise BusinessRuleError("Order is already paid", field="paymentStatus")
    if order.status in TERMINAL_STATUSES:
        raise BusinessRuleError(f"Order is {order.status.value} and cannot be paid", field="status")

    # the SDK call is blocking; keep it off the event loop
    intent = await run_in_threadpool(
        stripe.PaymentIntent.create,
        api_key=settings.stripe_secret_key,
        amount=_cents(order.total),
        currency=order.currency.lower(),
        metadata={"orderId": order.id, "orderNumber": order.order_number},
        description=f"Order {order.order_number}",
        automatic_payment_methods={"enabled": True},
    )

    async with db.unit_of_work() as repo:
        await repo.set_payment(order.id, PaymentStatus.PENDING, intent["id"])

    logger.info("payment intent %s opened for order %s", intent["id"], order.order_number)
    return {
        "orderId": order.id,
        "paymentIntentId": intent["id"],
        "clientSecret": intent["client_secret"],
        "total": order.total,
    }


async def handle_stripe_webhook(settings: Settings, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """Verify a Stripe event and record the payment outcome on its order."""
    if not settings.stripe_webhook_secret:
        raise ServiceUnavailableError("Stripe webhook secret is not configured")

    try:
        event = stripe.Webhook.construct_event(
            payload=raw_body, sig_header=signature, secret=settings.stripe_webhook_secret
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise ValidationError(f"Invalid Stripe event: {e}", field="Stripe-Signature")

    typ = event["type"]
    data = event["data"]["object"]
    order_id = (data.get("metadata") or {}).get("orderId")

    outcome = {
        "payment_intent.succeeded": PaymentStatus.PAID,
        "payment_intent.payment_failed": PaymentStatus.FAILED,
    }.get(typ)
    if outcome is None or not order_id:
        logger.info("stripe event %s ignored", typ)
        return {"received": True, "handled": False}

    async with db.unit_of_work() as repo:
        order = await repo.get_order(order_id, lock=True)
        if order is None:
            logger.warning("stripe event %s references unknown order %s", typ, order_id)
            return {"received": True, "handled": False}
        if order.status is OrderStatus.CANCELLED:
            # stock and coupon were already released; a refund is handled in Stripe
            logger.warning("stripe event %s for cancelled order %s not recorded", typ, order.order_number)
            return {"received": True, "handled": False}
        await repo.set_payment(order_id, outcome, data.get("id"))

    logger.info("order %s payment %s", order_id, outcome.value)
    return {"received": True, "handled": True}
