"""
Base Payment Gateway for the storefront platform
Abstract interface for hosted checkout-session providers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from apps.common.config import get_storefront_config
from apps.common.types import Cents

logger = logging.getLogger(__name__)

PAYMENT_STATUS_PAID = "paid"


class PaymentGatewayError(Exception):
    """Provider call failed (network, authentication, rejected request)."""


# ===============================================================================
# TYPE DEFINITIONS
# ===============================================================================


@dataclass(frozen=True)
class PaymentLineItem:
    """One priced line; product_id is the ledger identity the line was built from."""

    product_id: int | None
    name: str
    unit_amount_cents: Cents
    quantity: int


@dataclass(frozen=True)
class PaymentSessionRequest:
    line_items: list[PaymentLineItem]
    currency: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)
    discount_cents: Cents = 0
    discount_label: str = ""
    customer_email: str | None = None


@dataclass(frozen=True)
class PaymentSessionHandle:
    session_id: str
    url: str | None


@dataclass(frozen=True)
class PaymentSessionDetails:
    """Authoritative view of a session as recorded by the provider."""

    session_id: str
    payment_status: str
    metadata: dict[str, str]
    amount_subtotal_cents: Cents
    amount_discount_cents: Cents
    amount_total_cents: Cents
    line_items: list[PaymentLineItem]

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_PAID


# ===============================================================================
# ABSTRACT BASE GATEWAY
# ===============================================================================


class BasePaymentGateway(ABC):
    """
    🏛️ Abstract base class for hosted-checkout payment gateways

    Provides unified interface for:
    - Checkout session creation (line items, metadata, one-off discount)
    - Retrieval of the provider's authoritative session record
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"apps.billing.gateways.{self.__class__.__name__.lower()}")

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        """Gateway identifier (e.g., 'stripe')"""

    @abstractmethod
    def create_checkout_session(self, request: PaymentSessionRequest) -> PaymentSessionHandle:
        """
        Create a hosted checkout session

        Args:
            request: Line items, currency, redirect URLs, metadata and discount

        Returns:
            PaymentSessionHandle with the session id and redirect URL

        Raises:
            PaymentGatewayError: If the provider rejects or cannot be reached
        """

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> PaymentSessionDetails:
        """
        Fetch a session, its metadata, amounts and line items

        Raises:
            PaymentGatewayError: If the provider rejects or cannot be reached
        """

    def validate_configuration(self) -> bool:
        """
        Validate gateway configuration (API keys, etc.)
        Override in subclasses for specific validation.
        """
        return True


# ===============================================================================
# GATEWAY FACTORY
# ===============================================================================


class PaymentGatewayFactory:
    """
    🏭 Factory for creating payment gateway instances

    Supports dynamic gateway selection based on configuration.
    """

    _gateways: ClassVar[dict[str, type[BasePaymentGateway]]] = {}

    @classmethod
    def register_gateway(cls, gateway_name: str, gateway_class: type[BasePaymentGateway]) -> None:
        """Register a payment gateway class"""
        cls._gateways[gateway_name] = gateway_class

    @classmethod
    def create_gateway(cls, gateway_name: str, **kwargs: Any) -> BasePaymentGateway:
        """
        Create payment gateway instance

        Raises:
            ValueError: If gateway not found or not configured
        """
        if gateway_name not in cls._gateways:
            raise ValueError(f"Payment gateway '{gateway_name}' not registered")

        gateway = cls._gateways[gateway_name](**kwargs)
        if not gateway.validate_configuration():
            raise ValueError(f"Payment gateway '{gateway_name}' not properly configured")

        logger.debug(f"✅ Created {gateway_name} payment gateway")
        return gateway

    @classmethod
    def get_default_gateway(cls) -> BasePaymentGateway:
        """Default gateway from DEFAULT_PAYMENT_GATEWAY"""
        return cls.create_gateway(get_storefront_config().payment_gateway)
