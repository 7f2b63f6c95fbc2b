# coauthor/schemas/payment_schemas.py
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from typing_extensions import Annotated


class RefundDetails(BaseModel):
    refund_transaction_id: str
    refund_amount: int
    refund_reason: str
    refund_status: str  # requested | pending | failed | unknown | manual
    gateway_response: Optional[Dict[str, Any]] = None
    initiated_at: datetime
    initiated_by: Optional[int] = None


class WalletPaymentDetails(BaseModel):
    kind: Literal["wallet"] = "wallet"
    merchant_transaction_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    initiate_response: Optional[Dict[str, Any]] = None
    webhook_response: Optional[Dict[str, Any]] = None
    status_check_response: Optional[Dict[str, Any]] = None
    rejection: Optional[Dict[str, Any]] = None
    refund: Optional[RefundDetails] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class BankVerifyPaymentDetails(BaseModel):
    kind: Literal["bank_verify"] = "bank_verify"
    merchant_transaction_id: Optional[str] = None
    utr: Optional[str] = None
    account_status: Optional[str] = None
    account_status_code: Optional[str] = None
    name_match_score: Optional[Any] = None
    bank_name: Optional[str] = None
    verification_response: Optional[Dict[str, Any]] = None
    refund: Optional[RefundDetails] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


PaymentDetails = Annotated[
    Union[WalletPaymentDetails, BankVerifyPaymentDetails],
    Field(discriminator="kind"),
]

_details_adapter = TypeAdapter(PaymentDetails)


def parse_payment_details(raw: Optional[dict], method: str):
    """Typed view over the stored JSON blob."""
    data = dict(raw or {})
    data.setdefault("kind", method)
    model = WalletPaymentDetails if data["kind"] == "wallet" else BankVerifyPaymentDetails

    extra = dict(data.pop("extra", None) or {})
    for key in list(data):
        if key not in model.model_fields:
            extra[key] = data.pop(key)
    data["extra"] = extra
    return _details_adapter.validate_python(data)


def merge_payment_details(raw: Optional[dict], method: str, update: Dict[str, Any]) -> dict:
    """
    Merge gateway data into the stored blob.

    Known keys are set on the typed model, anything else lands in `extra`.
    Existing keys are never removed and `None` values are ignored.
    """
    details = parse_payment_details(raw, method)
    fields = type(details).model_fields
    extra = dict(details.extra)

    values = details.model_dump()
    for key, value in update.items():
        if value is None or key == "kind":
            continue
        if key == "extra" and isinstance(value, dict):
            extra.update(value)
        elif key in fields:
            values[key] = value
        else:
            extra[key] = value

    values["extra"] = extra
    merged = _details_adapter.validate_python(values)
    return merged.model_dump(mode="json", exclude_none=True)


class GatewayOutcome(BaseModel):
    payment_id: str
    status: str
    redirect_url: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    raw_response: Dict[str, Any] = Field(default_factory=dict)


class PayerInfo(BaseModel):
    name: str
    phone_number: str
    bank_account: Optional[str] = None
    ifsc: Optional[str] = None


class WalletPayRequest(BaseModel):
    phone_number: Optional[str] = None
    name: Optional[str] = None


class StatusCheckRequest(BaseModel):
    transaction_id: str


class RefundRequest(BaseModel):
    refund_amount: int
    reason: str


class RefundRecord(BaseModel):
    purchase_id: int
    refund_transaction_id: str
    refund_amount: int
    refund_status: str
    message: str = "Refund initiated successfully"
