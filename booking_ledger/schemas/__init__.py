"""Pydantic schemas used across the project."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booking_ledger.domain.discounts.models import DiscountKind, ItemScope
from booking_ledger.domain.payments.models import PaymentMethod, PaymentPurpose, PaymentStatus
from booking_ledger.domain.wallets.models import TransactionDirection


class ErrorInfo(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ApiResult(BaseModel):
    """Envelope returned to controllers for every ledger operation."""

    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ApiResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Optional[dict[str, Any]] = None, data: Any = None) -> "ApiResult":
        return cls(
            success=False,
            data=data,
            error=ErrorInfo(code=code, message=message, details=details or {}),
        )


class WalletSnapshotResponse(BaseModel):
    user_id: str
    balance_cents: int
    currency: str
    reference_balance_cents: int
    currency_changed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WalletTransactionResponse(BaseModel):
    id: int
    direction: TransactionDirection
    amount_cents: int
    delta_cents: int
    balance_after_cents: int
    currency: str
    description: str
    reference: Optional[str] = None
    original_amount_cents: Optional[int] = None
    original_currency: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WalletTransactionListResponse(BaseModel):
    transactions: list[WalletTransactionResponse] = Field(default_factory=list)


class WalletCreditRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=10)
    description: str = Field(default="Wallet credit", max_length=255)
    reference: Optional[str] = None


class WalletCurrencyRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=10)


class AddFundsRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=10)


class PaymentCreateRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=10)
    method: str = Field(..., description="gateway or wallet")
    booking_id: Optional[str] = None
    discount_code: Optional[str] = None
    item_type: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    user_id: str
    booking_id: Optional[str] = None
    amount_cents: int
    original_amount_cents: int
    currency: str
    status: PaymentStatus
    method: PaymentMethod
    purpose: PaymentPurpose
    gateway_ref: Optional[str] = None
    discount_code: Optional[str] = None
    failure_reason: Optional[str] = None
    refund_reason: Optional[str] = None
    refunded_amount_cents: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentCreateResponse(BaseModel):
    payment: PaymentResponse
    client_secret: Optional[str] = None


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse] = Field(default_factory=list)


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    amount_cents: Optional[int] = Field(default=None, gt=0)


class RefundResponse(BaseModel):
    payment: PaymentResponse
    refunded_amount_cents: int
    gateway_refund_ref: Optional[str] = None
    wallet: Optional[WalletSnapshotResponse] = None


class DiscountCheckRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_amount_cents: int = Field(..., gt=0)
    item_type: Optional[str] = None


class DiscountResponse(BaseModel):
    id: str
    code: str
    kind: DiscountKind
    value: int
    max_uses: int
    current_uses: int
    expires_at: datetime
    min_order_cents: Optional[int] = None
    max_discount_cents: Optional[int] = None
    applicable_items: ItemScope
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class DiscountListResponse(BaseModel):
    discounts: list[DiscountResponse] = Field(default_factory=list)


class DiscountQuoteResponse(BaseModel):
    code: str
    original_amount_cents: int
    discounted_amount_cents: int
    discount_amount_cents: int
    applied: bool


class DiscountCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    kind: DiscountKind
    value: int = Field(..., gt=0, description="basis points for percentage, cents for fixed")
    max_uses: int = Field(..., gt=0)
    expires_at: datetime
    min_order_cents: Optional[int] = Field(default=None, ge=0)
    max_discount_cents: Optional[int] = Field(default=None, gt=0)
    applicable_items: ItemScope = ItemScope.ALL


class DiscountUpdateRequest(BaseModel):
    kind: Optional[DiscountKind] = None
    value: Optional[int] = Field(default=None, gt=0)
    max_uses: Optional[int] = Field(default=None, gt=0)
    expires_at: Optional[datetime] = None
    min_order_cents: Optional[int] = Field(default=None, ge=0)
    max_discount_cents: Optional[int] = Field(default=None, gt=0)
    applicable_items: Optional[ItemScope] = None
    is_active: Optional[bool] = None

    @field_validator("kind", "value", "max_uses", "expires_at", "applicable_items", "is_active")
    @classmethod
    def _omit_instead_of_null(cls, value: Any) -> Any:
        # only the two limits can be cleared with null
        if value is None:
            raise ValueError("field may be omitted but not set to null")
        return value


class CancellationFeeRequest(BaseModel):
    item_type: str
    booking_date: datetime
    total_amount_cents: int = Field(..., ge=0)


class CancellationFeeResponse(BaseModel):
    can_cancel: bool
    refund_percentage: int
    refund_amount_cents: int
    cancellation_fee_cents: int
    reason: str

    model_config = ConfigDict(from_attributes=True)


class CancellationRefundResponse(BaseModel):
    fee: CancellationFeeResponse
    refund: Optional[RefundResponse] = None
