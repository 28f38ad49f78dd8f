"""SQLAlchemy models for GearShare.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from gearshare.models.booking import Booking
from gearshare.models.damage_claim import DamageClaim
from gearshare.models.equipment import Equipment, RateOverride
from gearshare.models.inspection import Inspection
from gearshare.models.payment import Payment, Payout
from gearshare.models.user import User

__all__ = [
    "Booking",
    "DamageClaim",
    "Equipment",
    "Inspection",
    "Payment",
    "Payout",
    "RateOverride",
    "User",
]
