from pydantic import BaseModel
from typing import Optional, Dict, Any, List
from datetime import date, datetime
from enum import Enum


class ProgramStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CancellationPolicy(BaseModel):
    full_refund_days_before_start: int = 7
    partial_refund_days_before_start: int = 3
    partial_refund_percent: int = 50
    no_refund_after_start: bool = True
    prorate_by_sessions_attended: bool = True

    @classmethod
    def merged(cls, overrides: Optional[Dict[str, Any]] = None) -> "CancellationPolicy":
        """Defaults overlaid field by field with whatever the program sets."""
        if isinstance(overrides, CancellationPolicy):
            overrides = overrides.model_dump()
        values = {
            key: value
            for key, value in (overrides or {}).items()
            if key in cls.model_fields and value is not None
        }
        return cls(**values)


class ProgramCreate(BaseModel):
    organization_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    price_cents: int
    currency: Optional[str] = None  # Falls back to settings.default_currency
    allow_installments: bool = False
    installment_count: int = 1
    waitlist_enabled: bool = True
    waitlist_limit: Optional[int] = None
    cancellation_policy: Optional[Dict[str, Any]] = None


class ProgramUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    price_cents: Optional[int] = None
    currency: Optional[str] = None
    allow_installments: Optional[bool] = None
    installment_count: Optional[int] = None
    waitlist_enabled: Optional[bool] = None
    waitlist_limit: Optional[int] = None
    cancellation_policy: Optional[Dict[str, Any]] = None


class ProgramResponse(BaseModel):
    id: str
    organization_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    status: ProgramStatus
    start_date: date
    end_date: Optional[date] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    current_participants: int = 0
    price_cents: int
    currency: str = "CAD"
    allow_installments: bool = False
    installment_count: Optional[int] = 1
    waitlist_enabled: bool = True
    waitlist_limit: Optional[int] = None
    cancellation_policy: Optional[Dict[str, Any]] = None
    published_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def policy(self) -> CancellationPolicy:
        return CancellationPolicy.merged(self.cancellation_policy)

    @property
    def is_full(self) -> bool:
        return bool(self.max_participants) and self.current_participants >= self.max_participants


class ProgramPage(BaseModel):
    data: List[ProgramResponse]
    total: int
    limit: int
    offset: int
