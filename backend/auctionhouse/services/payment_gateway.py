"""Payment capture interface.

Charge capture lives in the payment provider integration; the engine only
needs a yes/no answer for a given order.
"""

import logging
from decimal import Decimal
from typing import Protocol

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def charge(self, order_id: str, amount: Decimal) -> bool:
        """Capture ``amount`` for ``order_id``. True on success, False if declined."""
        ...


class StubPaymentGateway:
    """Dry-run gateway — logs the charge and returns a fixed outcome.

    Useful for local runs and tests before a real provider is wired in.
    """

    def __init__(self, approve: bool = True):
        self.approve = approve

    def charge(self, order_id: str, amount: Decimal) -> bool:
        logger.info(
            "[payments:stub] CHARGE order=%s amount=%s -> %s",
            order_id, amount, "approved" if self.approve else "declined",
        )
        return self.approve
