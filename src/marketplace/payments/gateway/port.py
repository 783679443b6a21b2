"""Payment gateway port.

The engine needs two things from a gateway: an order handle to collect money
against, and a yes/no answer on whether a returned payment signature is
genuine. How a gateway signs is its own business.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayOrder:
    """A gateway-side order the buyer pays against."""

    gateway_order_id: str
    amount_minor: int
    currency: str
    receipt: str


@dataclass(frozen=True)
class RefundResult:
    success: bool
    gateway_refund_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_order(self, amount: float, currency: str, receipt: str) -> GatewayOrder:
        """Open a gateway order for ``amount`` (major units). Raises ``GatewayError``."""
        ...

    @abstractmethod
    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """True when ``signature`` authenticates the order/payment pair."""
        ...

    @abstractmethod
    def create_refund(self, gateway_payment_id: str, amount: float) -> RefundResult:
        ...
