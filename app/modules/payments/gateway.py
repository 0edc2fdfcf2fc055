"""External payment processor boundary.

The lifecycle services only see ``PaymentGateway``; ``StripePaymentGateway``
is the production implementation.
"""
from pydantic import BaseModel
from typing import Any, Dict, Optional, Protocol
import logging

import stripe

logger = logging.getLogger(__name__)


class PaymentIntentInfo(BaseModel):
    id: str
    status: str
    latest_charge: Optional[str] = None


class RefundReceipt(BaseModel):
    id: str
    amount_cents: int
    status: Optional[str] = None


class PaymentGateway(Protocol):
    """Payment processor operations; every call may fail independently."""

    def create_refund(
        self,
        charge_id: str,
        amount_cents: int,
        reason: str,
        metadata: Dict[str, str],
    ) -> RefundReceipt:
        ...

    def get_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        ...

    def cancel_payment_intent(self, payment_intent_id: str) -> None:
        ...

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        customer_id: str,
        metadata: Dict[str, str],
    ) -> PaymentIntentInfo:
        ...

    def confirm_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        ...


def _charge_id(latest_charge: Any) -> Optional[str]:
    """latest_charge is an id string, or a Charge object when expanded."""
    if latest_charge is None or isinstance(latest_charge, str):
        return latest_charge
    return getattr(latest_charge, "id", None)


def _intent_info(intent: Any) -> PaymentIntentInfo:
    return PaymentIntentInfo(
        id=intent.id,
        status=intent.status,
        latest_charge=_charge_id(getattr(intent, "latest_charge", None)),
    )


class StripePaymentGateway:
    def __init__(self, api_key: Optional[str]):
        if not api_key:
            raise ValueError("Stripe secret key is not configured")
        self.api_key = api_key

    def create_refund(self, charge_id, amount_cents, reason, metadata):
        refund = stripe.Refund.create(
            charge=charge_id,
            amount=amount_cents,
            reason=reason,
            metadata=metadata,
            api_key=self.api_key,
        )
        logger.info(f"Stripe refund {refund.id} for charge {charge_id}: {amount_cents} cents")
        return RefundReceipt(id=refund.id, amount_cents=refund.amount, status=refund.status)

    def get_payment_intent(self, payment_intent_id):
        return _intent_info(stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key))

    def cancel_payment_intent(self, payment_intent_id):
        stripe.PaymentIntent.cancel(payment_intent_id, api_key=self.api_key)

    def create_payment_intent(self, amount_cents, currency, customer_id, metadata):
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency.lower(),
            customer=customer_id,
            off_session=True,
            confirm=True,
            metadata=metadata,
            api_key=self.api_key,
        )
        return _intent_info(intent)

    def confirm_payment_intent(self, payment_intent_id):
        return _intent_info(stripe.PaymentIntent.confirm(payment_intent_id, api_key=self.api_key))
