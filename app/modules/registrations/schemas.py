from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from enum import Enum


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


ACTIVE_REGISTRATION_STATUSES = [RegistrationStatus.PENDING.value, RegistrationStatus.CONFIRMED.value]


class PaymentPlan(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class RegistrationCreate(BaseModel):
    program_id: str
    player_id: str
    registered_by: str
    payment_plan: Optional[PaymentPlan] = None  # Defaults from the program's installment setting
    stripe_customer_id: Optional[str] = None
    notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None


class RegistrationStatusUpdate(BaseModel):
    status: RegistrationStatus


class RegistrationConfirm(BaseModel):
    paid_amount_cents: int = Field(ge=0)


class PaymentPlanCreate(BaseModel):
    stripe_customer_id: Optional[str] = None


class RegistrationResponse(BaseModel):
    id: str
    program_id: str
    player_id: str
    registered_by: str
    status: RegistrationStatus
    payment_plan: PaymentPlan
    total_amount_cents: int
    paid_amount_cents: int = 0
    refund_amount_cents: int = 0
    currency: str = "CAD"
    stripe_customer_id: Optional[str] = None
    notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    registered_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_active(self) -> bool:
        return self.status.value in ACTIVE_REGISTRATION_STATUSES


class RegistrationPage(BaseModel):
    data: List[RegistrationResponse]
    total: int
    limit: int
    offset: int


class InstallmentScheduleItem(BaseModel):
    installment_number: int
    amount_cents: int
    due_date: datetime


class RegistrationPaymentResponse(BaseModel):
    id: str
    registration_id: str
    amount_cents: int
    currency: str = "CAD"
    installment_number: int = 1
    total_installments: int = 1
    due_date: date
    status: PaymentStatus
    stripe_payment_intent_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund_amount_cents: Optional[int] = 0
    refunded_at: Optional[datetime] = None
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionsAttended(BaseModel):
    attended: int
    total: int


class PaidAmountResponse(BaseModel):
    registration_id: str
    paid_amount_cents: int
