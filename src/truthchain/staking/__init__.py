"""Claims, stakes and their resolution.

- enums / constants: status, side, outcome and transaction vocabulary
- models: Claim, Stake, Profile, TransactionRecord, Resolution and the tally
- validators: local checks run before any ledger I/O
- stake_ledger: StakeLedger, the only writer of stakes and claim counters
- lifecycle: ClaimLifecycle and the read-time display helpers
- resolver: VerificationResolver and ResolutionEvent
"""

from .constants import ClaimConstants
from .enums import (
    ClaimStatus,
    DisplayStatus,
    ExpiryState,
    Outcome,
    StakeSide,
    TransactionKind,
    TransactionStatus,
)
from .lifecycle import (
    ClaimLifecycle,
    display_status,
    expiry_state,
    format_time_remaining,
    narration_text,
    recommend_stake,
    time_remaining,
)
from .models import (
    Claim,
    Profile,
    ProfileAdjustment,
    Resolution,
    Stake,
    TransactionRecord,
    VerificationTally,
    tally_stakes,
)
from .resolver import ResolutionEvent, VerificationResolver
from .stake_ledger import StakeLedger, build_memo
from .validators import validate_content, validate_side, validate_stake_amount

__all__ = [
    # Constants
    "ClaimConstants",
    # Enums
    "ClaimStatus",
    "DisplayStatus",
    "ExpiryState",
    "Outcome",
    "StakeSide",
    "TransactionKind",
    "TransactionStatus",
    # Models
    "Claim",
    "Profile",
    "ProfileAdjustment",
    "Resolution",
    "Stake",
    "TransactionRecord",
    "VerificationTally",
    "tally_stakes",
    # Services
    "ClaimLifecycle",
    "ResolutionEvent",
    "StakeLedger",
    "VerificationResolver",
    "build_memo",
    # Read-time helpers
    "display_status",
    "expiry_state",
    "format_time_remaining",
    "narration_text",
    "recommend_stake",
    "time_remaining",
    # Validators
    "validate_content",
    "validate_side",
    "validate_stake_amount",
]
