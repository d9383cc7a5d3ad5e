"""
Payment gateway implementations for the storefront.
Hosted checkout sessions behind a provider-neutral interface.
"""

from .base import BasePaymentGateway, PaymentGatewayError, PaymentGatewayFactory
from .stripe_gateway import StripeGateway

__all__ = ["BasePaymentGateway", "PaymentGatewayError", "PaymentGatewayFactory", "StripeGateway"]
