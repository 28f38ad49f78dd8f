"""Typed errors raised by the booking and settlement engine.

Every error carries a stable ``code`` so the API layer can map it to an HTTP
response without string matching.
"""


class GearShareError(Exception):
    """Base class for domain errors."""

    code = "error"
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Input-contract violations
# ---------------------------------------------------------------------------


class InvalidInput(GearShareError):
    code = "invalid_input"


class InvalidDateRange(InvalidInput):
    code = "invalid_date_range"
    default_message = "end_date must not be before start_date"


class InvalidAmount(InvalidInput):
    code = "invalid_amount"
    default_message = "Amount is out of range"


class UnknownInsuranceTier(InvalidInput):
    code = "unknown_insurance_tier"
    default_message = "Unknown insurance tier"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class BookingConflict(GearShareError):
    """Raised when a request cannot proceed because the range has conflicts."""

    code = "booking_conflict"
    default_message = "Requested dates are not bookable"

    def __init__(self, conflicts: list, message: str | None = None) -> None:
        self.conflicts = list(conflicts)
        super().__init__(message or "; ".join(c.message for c in self.conflicts) or None)


# ---------------------------------------------------------------------------
# State-machine violations
# ---------------------------------------------------------------------------


class StateError(GearShareError):
    code = "state_error"


class InvalidTransition(StateError):
    code = "invalid_transition"

    def __init__(self, current: str, event: str, message: str | None = None) -> None:
        self.current = current
        self.event = event
        super().__init__(message or f"Cannot {event} from status '{current}'")


class ImmutableState(StateError):
    code = "immutable_state"
    default_message = "Funds have already left escrow; the booking can no longer be changed"


class ReleaseNotYetEligible(StateError):
    code = "release_not_yet_eligible"
    default_message = "Escrow cannot be released before the release buffer has passed"


class OpenClaimExists(StateError):
    code = "open_claim_exists"
    default_message = "Escrow cannot be released while a damage claim is open"


class AllocationMismatch(StateError):
    code = "allocation_mismatch"
    default_message = "Settlement amounts must add up to the escrowed amount"


class WindowClosed(StateError):
    code = "window_closed"
    default_message = "The claim window is closed"

    def __init__(self, reason: str | None = None, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message)


class AlreadyFiled(StateError):
    code = "already_filed"
    default_message = "A damage claim has already been filed for this booking"


class ConcurrentModification(StateError):
    code = "concurrent_modification"
    default_message = "The record was modified by another request; reload and try again"
