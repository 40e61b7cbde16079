"""
LedgerPolicy -- the tunable knobs of the kernel.

The kernel never reads configuration files; ``fatura_config`` builds a
LedgerPolicy from YAML and the caller passes it to each service.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class LedgerPolicy:
    """
    Guarantees:
        - payment_tolerance >= 0.  Zero means pay() requires an exact match.
        - max_conflict_retries >= 0 retries after the first attempt.
    """

    payment_tolerance: Decimal = Decimal("0.00")
    max_conflict_retries: int = 3
    track_payable_forecast: bool = True
    payable_description: str = "Fatura {card} {competencia}"
    payment_description: str = "Pagamento fatura {card} {competencia}"

    def __post_init__(self) -> None:
        if self.payment_tolerance < 0:
            raise ValueError(
                f"payment_tolerance must be >= 0, got {self.payment_tolerance}"
            )
        if self.max_conflict_retries < 0:
            raise ValueError(
                f"max_conflict_retries must be >= 0, got {self.max_conflict_retries}"
            )
