"""Tests for filing, answering and resolving damage claims."""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.core.claim_window import OWNER_ALREADY_CONFIRMED, RETURN_NOT_CONFIRMED, WINDOW_EXPIRED
from gearshare.core.errors import AlreadyFiled, InvalidAmount, InvalidTransition, WindowClosed
from gearshare.models.payment import Payout
from gearshare.services.claim_service import (
    accept_counter_offer,
    escalate_claim,
    evaluate_claim_window,
    file_claim,
    resolve_claim,
    respond_to_claim,
)

pytestmark = pytest.mark.asyncio

T = datetime(2024, 6, 20, 10, 0)


@pytest.fixture
def claim_args(owner):
    return {
        "filed_by": owner.id,
        "description": "Cracked viewfinder",
        "estimated_cost": Decimal("150.00"),
        "evidence_photos": ["viewfinder.jpg"],
    }


class TestEvaluateClaimWindow:
    async def test_default_window_length(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)

        window = await evaluate_claim_window(db_session, booking, T + timedelta(hours=1))
        assert window.can_file_claim
        assert window.deadline == T + timedelta(hours=48)

    async def test_equipment_window_length(
        self, db_session: AsyncSession, owner, renter, make_equipment, make_active_booking, make_return_inspection
    ):
        equipment = await make_equipment(owner, claim_window_hours=12)
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)

        window = await evaluate_claim_window(db_session, booking, T + timedelta(hours=13))
        assert window.auto_accepted
        assert window.deadline == T + timedelta(hours=12)


class TestFileClaim:
    async def test_claim_disputes_escrow(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)

        claim = await file_claim(db_session, booking, now=T + timedelta(hours=10), **claim_args)

        assert claim.status == "pending"
        assert claim.filed_at == T + timedelta(hours=10)
        assert payment.escrow_status == "disputed"

    async def test_second_claim_is_rejected(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        await file_claim(db_session, booking, now=T + timedelta(hours=1), **claim_args)

        with pytest.raises(AlreadyFiled):
            await file_claim(db_session, booking, now=T + timedelta(hours=2), **claim_args)

    async def test_unconfirmed_return_is_rejected(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        with pytest.raises(WindowClosed) as exc_info:
            await file_claim(db_session, booking, now=T, **claim_args)
        assert exc_info.value.reason == RETURN_NOT_CONFIRMED
        assert payment.escrow_status == "held"

    async def test_owner_confirmed_return_is_rejected(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T, verified_by_owner=True)

        with pytest.raises(WindowClosed) as exc_info:
            await file_claim(db_session, booking, now=T + timedelta(hours=1), **claim_args)
        assert exc_info.value.reason == OWNER_ALREADY_CONFIRMED

    async def test_claim_after_sweep_auto_accepted_is_rejected(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        inspection = await make_return_inspection(booking, T)
        inspection.auto_accepted_at = T + timedelta(hours=49)
        await db_session.flush()

        with pytest.raises(WindowClosed) as exc_info:
            await file_claim(db_session, booking, now=T + timedelta(hours=50), **claim_args)
        assert exc_info.value.reason == WINDOW_EXPIRED

    async def test_claim_requires_active_booking(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        booking.status = "completed"
        with pytest.raises(InvalidTransition):
            await file_claim(db_session, booking, now=T, **claim_args)


class TestRespondToClaim:
    async def _filed(self, db, booking, claim_args):
        return await file_claim(db, booking, now=T + timedelta(hours=5), **claim_args)

    async def test_dispute_keeps_escrow_disputed(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await self._filed(db_session, booking, claim_args)

        await respond_to_claim(db_session, claim, "negotiate", T + timedelta(hours=6), counter_offer=Decimal("50"))

        assert claim.status == "disputed"
        assert claim.renter_response["counter_offer"] == "50.00"
        assert payment.escrow_status == "disputed"

    async def test_counter_offer_above_claim_is_rejected(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await self._filed(db_session, booking, claim_args)

        with pytest.raises(InvalidAmount):
            await respond_to_claim(db_session, claim, "negotiate", T + timedelta(hours=6), counter_offer=Decimal("151"))

    async def test_accept_settles_from_deposit(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(
            equipment, renter, deposit_amount="200.00", payment_intent_id="pi_claim_1"
        )
        await make_return_inspection(booking, T)
        claim = await self._filed(db_session, booking, claim_args)

        with patch("gearshare.services.escrow_service.refund_payment", new_callable=AsyncMock) as mock_refund:
            await respond_to_claim(db_session, claim, "accept", T + timedelta(hours=6))

        assert claim.status == "accepted"
        assert claim.resolved_by == "renter_acceptance"
        assert claim.paid_from_deposit == Decimal("150.00")
        assert claim.additional_charge == Decimal("0.00")
        assert payment.escrow_status == "released"
        assert payment.deposit_status == "claimed"
        assert payment.deposit_refund_amount == Decimal("50.00")
        assert booking.status == "completed"
        mock_refund.assert_awaited_once_with("pi_claim_1", Decimal("50.00"), f"claim-{claim.id}")

        result = await db_session.execute(select(Payout).where(Payout.booking_id == booking.id))
        assert result.scalar_one().amount == Decimal("500.00")


class TestEscalateAndResolve:
    async def test_escalate_then_resolve_with_split(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter, payment_intent_id="pi_claim_2")
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)

        await escalate_claim(db_session, claim)
        assert claim.status == "escalated"

        with patch("gearshare.services.escrow_service.refund_payment", new_callable=AsyncMock) as mock_refund:
            await resolve_claim(
                db_session,
                claim,
                Decimal("100.00"),
                T + timedelta(days=3),
                escrow_to_owner=Decimal("350.00"),
            )

        assert claim.status == "resolved"
        assert claim.escrow_to_owner == Decimal("350.00")
        assert claim.escrow_to_renter == Decimal("150.00")
        assert claim.additional_charge == Decimal("100.00")
        assert payment.owner_payout_amount == Decimal("350.00")
        assert payment.refunded_amount == Decimal("150.00")
        assert payment.escrow_status == "released"
        assert booking.status == "completed"
        mock_refund.assert_awaited_once_with("pi_claim_2", Decimal("150.00"), f"claim-{claim.id}")

    async def test_resolve_all_to_renter(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)

        await escalate_claim(db_session, claim)
        await resolve_claim(db_session, claim, Decimal("0"), T + timedelta(days=1), escrow_to_owner=Decimal("0"))

        assert payment.escrow_status == "refunded"
        assert payment.refunded_amount == Decimal("500.00")
        result = await db_session.execute(select(Payout).where(Payout.booking_id == booking.id))
        assert result.scalars().all() == []

    async def test_resolved_claim_cannot_be_escalated(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)
        await escalate_claim(db_session, claim)
        await resolve_claim(db_session, claim, Decimal("150"), T + timedelta(days=1))

        with pytest.raises(InvalidTransition):
            await escalate_claim(db_session, claim)

    async def test_pending_claim_cannot_be_arbitrated(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)

        with pytest.raises(InvalidTransition):
            await resolve_claim(db_session, claim, Decimal("0"), T + timedelta(days=1), escrow_to_owner=Decimal("0"))

        assert claim.status == "pending"
        assert payment.escrow_status == "disputed"

    async def test_arbitrated_amount_cannot_exceed_claim(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter, deposit_amount="100.00")
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)
        await escalate_claim(db_session, claim)

        with pytest.raises(InvalidAmount):
            await resolve_claim(db_session, claim, Decimal("5000.00"), T + timedelta(days=1))

        assert payment.escrow_status == "disputed"
        assert payment.deposit_status == "held"


class TestAcceptCounterOffer:
    async def test_owner_agreement_settles_at_counter_offer(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(
            equipment, renter, deposit_amount="100.00", payment_intent_id="pi_claim_3"
        )
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)
        await respond_to_claim(db_session, claim, "negotiate", T + timedelta(hours=6), counter_offer=Decimal("60"))

        with patch("gearshare.services.escrow_service.refund_payment", new_callable=AsyncMock) as mock_refund:
            await accept_counter_offer(db_session, claim, T + timedelta(hours=8))

        assert claim.status == "resolved"
        assert claim.resolved_by == "agreement"
        assert claim.final_amount == Decimal("60.00")
        assert claim.paid_from_deposit == Decimal("60.00")
        assert payment.escrow_status == "released"
        assert payment.deposit_refund_amount == Decimal("40.00")
        assert booking.status == "completed"
        mock_refund.assert_awaited_once_with("pi_claim_3", Decimal("40.00"), f"claim-{claim.id}")

    async def test_plain_dispute_cannot_be_agreed(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, payment = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)
        await respond_to_claim(db_session, claim, "dispute", T + timedelta(hours=6))

        with pytest.raises(InvalidTransition):
            await accept_counter_offer(db_session, claim, T + timedelta(hours=8))
        assert payment.escrow_status == "disputed"

    async def test_unanswered_claim_cannot_be_agreed(
        self, db_session: AsyncSession, equipment, renter, make_active_booking, make_return_inspection, claim_args
    ):
        booking, _ = await make_active_booking(equipment, renter)
        await make_return_inspection(booking, T)
        claim = await file_claim(db_session, booking, now=T + timedelta(hours=5), **claim_args)

        with pytest.raises(InvalidTransition):
            await accept_counter_offer(db_session, claim, T + timedelta(hours=8))
        assert claim.status == "pending"
