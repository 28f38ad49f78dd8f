"""Tests for Stripe webhook handler functions with mocked Stripe events."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.billing.webhooks import (
    get_booking_for_intent,
    handle_amount_capturable_updated,
    handle_payment_failed,
    handle_payment_succeeded,
)
from gearshare.models.booking import Booking
from gearshare.services.booking_service import approve_booking, hold_payment, request_booking
from gearshare.services.common import get_payment

pytestmark = pytest.mark.asyncio


class _StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects)."""

    def __getitem__(self, key: str):
        return getattr(self, key)


def _make_event(event_type: str, data_object: dict) -> _StripeObj:
    """Create a fake Stripe Event-like object."""
    obj = _StripeObj(**data_object)
    return _StripeObj(
        type=event_type,
        id=f"evt_test_{uuid.uuid4().hex[:8]}",
        data=_StripeObj(object=obj),
    )


async def _approved_booking(db: AsyncSession, equipment, renter, payment_intent_id: str | None = "pi_hook_1") -> Booking:
    booking = await request_booking(db, equipment, renter.id, date(2024, 6, 15), date(2024, 6, 20))
    await approve_booking(db, booking)
    booking.payment_intent_id = payment_intent_id
    await db.flush()
    return booking


def _intent_event(event_type: str, intent_id: str, booking: Booking | None = None) -> _StripeObj:
    metadata = {"booking_id": str(booking.id)} if booking is not None else {}
    return _make_event(event_type, {"id": intent_id, "metadata": metadata})


class TestGetBookingForIntent:
    async def test_by_intent_id(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        intent = _StripeObj(id="pi_hook_1", metadata={})
        assert (await get_booking_for_intent(db_session, intent)).id == booking.id

    async def test_falls_back_to_metadata(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter, payment_intent_id=None)
        intent = _StripeObj(id="pi_other", metadata={"booking_id": str(booking.id)})
        assert (await get_booking_for_intent(db_session, intent)).id == booking.id

    async def test_bad_metadata(self, db_session: AsyncSession):
        intent = _StripeObj(id="pi_unknown", metadata={"booking_id": "not-a-uuid"})
        assert await get_booking_for_intent(db_session, intent) is None


class TestAmountCapturableUpdated:
    async def test_holds_and_captures_without_activating(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.amount_capturable_updated", "pi_hook_1", booking)

        with patch("gearshare.billing.webhooks.capture_payment", new_callable=AsyncMock) as mock_capture:
            await handle_amount_capturable_updated(db_session, event)

        mock_capture.assert_awaited_once_with("pi_hook_1")
        assert booking.status == "approved"
        payment = await get_payment(db_session, booking.id)
        assert payment is not None
        assert payment.escrow_status == "held"
        assert payment.escrow_amount == Decimal("500.00")
        assert payment.payment_intent_id == "pi_hook_1"
        assert payment.captured_at is not None

    async def test_duplicate_event_is_ignored(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.amount_capturable_updated", "pi_hook_1", booking)

        with patch("gearshare.billing.webhooks.capture_payment", new_callable=AsyncMock) as mock_capture:
            await handle_amount_capturable_updated(db_session, event)
            await handle_amount_capturable_updated(db_session, event)

        assert mock_capture.await_count == 1

    async def test_failed_capture_keeps_uncaptured_hold(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.amount_capturable_updated", "pi_hook_1", booking)

        with patch(
            "gearshare.billing.webhooks.capture_payment",
            new_callable=AsyncMock,
            side_effect=stripe.APIConnectionError("network down"),
        ):
            await handle_amount_capturable_updated(db_session, event)

        payment = await get_payment(db_session, booking.id)
        assert payment.escrow_status == "held"
        assert payment.captured_at is None
        assert booking.status == "approved"

    async def test_unknown_intent_is_ignored(self, db_session: AsyncSession):
        event = _intent_event("payment_intent.amount_capturable_updated", "pi_nobody")

        with patch("gearshare.billing.webhooks.capture_payment", new_callable=AsyncMock) as mock_capture:
            await handle_amount_capturable_updated(db_session, event)

        mock_capture.assert_not_awaited()


class TestPaymentSucceeded:
    async def test_activates_over_held_escrow(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)

        with patch("gearshare.billing.webhooks.capture_payment", new_callable=AsyncMock):
            await handle_amount_capturable_updated(
                db_session, _intent_event("payment_intent.amount_capturable_updated", "pi_hook_1", booking)
            )
        held = await get_payment(db_session, booking.id)
        await handle_payment_succeeded(db_session, _intent_event("payment_intent.succeeded", "pi_hook_1", booking))

        assert booking.status == "active"
        assert booking.activated_at is not None
        assert (await get_payment(db_session, booking.id)).id == held.id

    async def test_automatic_capture_opens_escrow(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.succeeded", "pi_hook_1", booking)

        with patch("gearshare.billing.webhooks.capture_payment", new_callable=AsyncMock) as mock_capture:
            await handle_payment_succeeded(db_session, event)

        mock_capture.assert_not_awaited()
        assert booking.status == "active"
        payment = await get_payment(db_session, booking.id)
        assert payment.escrow_status == "held"
        assert payment.captured_at is not None

    async def test_repeat_is_noop(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.succeeded", "pi_hook_1", booking)

        await handle_payment_succeeded(db_session, event)
        activated_at = booking.activated_at
        await handle_payment_succeeded(db_session, event)

        assert booking.activated_at == activated_at


class TestPaymentFailed:
    async def test_clears_intent_on_approved_booking(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.payment_failed", "pi_hook_1", booking)

        await handle_payment_failed(db_session, event)

        assert booking.status == "approved"
        assert booking.payment_intent_id is None

    async def test_drops_uncaptured_hold(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        await hold_payment(db_session, booking, "pi_hook_1", datetime(2024, 6, 10, 9, 0))

        await handle_payment_failed(db_session, _intent_event("payment_intent.canceled", "pi_hook_1", booking))

        assert await get_payment(db_session, booking.id) is None
        assert booking.payment_intent_id is None

    async def test_other_intent_is_left_alone(self, db_session: AsyncSession, equipment, renter):
        booking = await _approved_booking(db_session, equipment, renter)
        event = _intent_event("payment_intent.canceled", "pi_stale", booking)

        await handle_payment_failed(db_session, event)

        assert booking.payment_intent_id == "pi_hook_1"
