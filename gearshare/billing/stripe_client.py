"""Async Stripe API wrapper for GearShare payments, refunds and owner payouts."""

import logging
from decimal import Decimal

import stripe
from stripe import StripeClient

from gearshare.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


def to_cents(amount: Decimal) -> int:
    """Convert a 2-decimal money amount to integer cents."""
    return int((Decimal(amount) * 100).to_integral_value())


async def authorize_payment(
    booking_id: str,
    amount: Decimal,
    renter_id: str,
    owner_id: str,
    equipment_id: str,
) -> stripe.PaymentIntent:
    """Create a manual-capture PaymentIntent for a booking's amount due.

    Funds are only authorized here; they are captured into escrow when the
    ``payment_intent.amount_capturable_updated`` webhook arrives.
    """
    client = get_stripe_client()
    logger.info("Authorizing %s for booking %s", amount, booking_id)
    return await client.v1.payment_intents.create_async(
        params={
            "amount": to_cents(amount),
            "currency": settings.currency,
            "capture_method": "manual",
            "metadata": {
                "booking_id": booking_id,
                "renter_id": renter_id,
                "owner_id": owner_id,
                "equipment_id": equipment_id,
            },
        },
        options={"idempotency_key": f"authorize-{booking_id}"},
    )


async def capture_payment(payment_intent_id: str) -> stripe.PaymentIntent:
    """Capture an authorized PaymentIntent; the captured funds are then held in escrow."""
    client = get_stripe_client()
    logger.info("Capturing PaymentIntent %s", payment_intent_id)
    return await client.v1.payment_intents.capture_async(
        payment_intent_id,
        options={"idempotency_key": f"capture-{payment_intent_id}"},
    )


async def cancel_authorization(payment_intent_id: str) -> stripe.PaymentIntent:
    """Void an authorized-but-not-captured PaymentIntent."""
    client = get_stripe_client()
    logger.info("Cancelling PaymentIntent %s", payment_intent_id)
    return await client.v1.payment_intents.cancel_async(payment_intent_id)


async def refund_payment(payment_intent_id: str, amount: Decimal, reason_key: str) -> stripe.Refund:
    """Refund part or all of a captured PaymentIntent.

    ``reason_key`` makes the request idempotent per logical refund.
    """
    client = get_stripe_client()
    logger.info("Refunding %s on PaymentIntent %s", amount, payment_intent_id)
    return await client.v1.refunds.create_async(
        params={
            "payment_intent": payment_intent_id,
            "amount": to_cents(amount),
        },
        options={"idempotency_key": f"refund-{reason_key}"},
    )


async def create_transfer(amount: Decimal, destination: str, payout_id: str) -> stripe.Transfer:
    """Transfer released escrow funds to an owner's connected account."""
    client = get_stripe_client()
    logger.info("Transferring %s to %s (payout %s)", amount, destination, payout_id)
    return await client.v1.transfers.create_async(
        params={
            "amount": to_cents(amount),
            "currency": settings.currency,
            "destination": destination,
            "metadata": {"payout_id": payout_id},
        },
        options={"idempotency_key": f"payout-{payout_id}"},
    )


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
