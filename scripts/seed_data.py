"""Seed the database with sample equipment listings and rental requests.

Creates a demo owner with a few camera and outdoor listings, a demo renter,
per-date calendar overrides, and bookings in the pending and approved states
made through the booking service so prices and policy versions are real.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gearshare.auth.jwt import create_access_token
from gearshare.database import async_session_factory
from gearshare.models.booking import Booking
from gearshare.models.equipment import Equipment, RateOverride
from gearshare.models.user import User
from gearshare.services.booking_service import approve_booking, request_booking

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_OWNER = {
    "email": "owner@gearshare.dev",
    "name": "Demo Owner",
    "stripe_account_id": "acct_demo_owner",
}
DEMO_RENTER = {
    "email": "renter@gearshare.dev",
    "name": "Demo Renter",
}

EQUIPMENT = [
    {
        "title": "Sony FX3 cinema camera kit",
        "description": "FX3 body, two batteries, 128GB CFexpress card, cage and top handle.",
        "daily_rate": Decimal("85.00"),
        "deposit_amount": Decimal("500.00"),
        "claim_window_hours": 72,
    },
    {
        "title": "DJI Mavic 3 Pro drone",
        "description": "Fly More combo with three batteries and ND filter set.",
        "daily_rate": Decimal("60.00"),
        "deposit_amount": Decimal("300.00"),
    },
    {
        "title": "4-person backpacking tent",
        "description": "Freestanding, 2.1 kg, footprint included.",
        "daily_rate": Decimal("18.00"),
    },
]


async def _clear_demo_data(session: AsyncSession) -> None:
    emails = [DEMO_OWNER["email"], DEMO_RENTER["email"]]
    result = await session.execute(select(User.id).where(User.email.in_(emails)))
    user_ids = list(result.scalars().all())
    if not user_ids:
        return
    print("⚠️  Demo users already exist. Deleting and re-seeding...")
    equipment_ids = select(Equipment.id).where(Equipment.owner_id.in_(user_ids))
    await session.execute(delete(Booking).where(Booking.equipment_id.in_(equipment_ids)))
    await session.execute(delete(RateOverride).where(RateOverride.equipment_id.in_(equipment_ids)))
    await session.execute(delete(Equipment).where(Equipment.owner_id.in_(user_ids)))
    await session.execute(delete(User).where(User.id.in_(user_ids)))
    await session.flush()


async def seed() -> None:
    """Populate the database with demo users, listings and bookings.

    Idempotent: existing demo users and everything they own are removed first.
    Bookings with captured payments are not seeded; those only come from the
    Stripe webhook.
    """
    async with async_session_factory() as session:
        await _clear_demo_data(session)

        owner = User(**DEMO_OWNER, is_active=True)
        renter = User(**DEMO_RENTER, is_active=True)
        session.add_all([owner, renter])
        await session.flush()
        print(f"✅ Created demo owner {owner.email} and renter {renter.email}")

        listings: list[Equipment] = []
        for data in EQUIPMENT:
            equipment = Equipment(owner_id=owner.id, status="active", **data)
            session.add(equipment)
            listings.append(equipment)
            print(f"   📦 {data['title']} (${data['daily_rate']}/day)")
        await session.flush()

        today = date.today()
        camera, drone, _ = listings

        # Weekend premium on the camera, owner's own shoot blocks the drone
        for offset in range(14):
            day = today + timedelta(days=offset)
            if day.weekday() >= 5:
                session.add(RateOverride(equipment_id=camera.id, date=day, custom_rate=Decimal("110.00")))
        session.add(RateOverride(equipment_id=drone.id, date=today + timedelta(days=10), is_available=False))
        await session.flush()

        pending = await request_booking(
            session, camera, renter.id, today + timedelta(days=3), today + timedelta(days=6), insurance_tier="basic"
        )
        approved = await request_booking(
            session, drone, renter.id, today + timedelta(days=1), today + timedelta(days=4)
        )
        await approve_booking(session, approved)
        await session.commit()

        print(f"✅ Created pending booking {pending.id} (total {pending.total_amount})")
        print(f"✅ Created approved booking {approved.id} (total {approved.total_amount})")
        print()
        print("=" * 60)
        print("Bearer tokens for local testing")
        print("=" * 60)
        print(f"   Owner:  {create_access_token(owner.id)}")
        print(f"   Renter: {create_access_token(renter.id)}")
        print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed())
