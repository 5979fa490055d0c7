from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from hutko_gateway.errors import MalformedRequest, UnrecognizedStatus


class CallbackStatus(str, Enum):
    CREATED = "created"
    PROCESSING = "processing"
    APPROVED = "approved"
    DECLINED = "declined"
    EXPIRED = "expired"
    REVERSED = "reversed"


def _is_blank(value: Any) -> bool:
    return value in (None, "", "0", 0)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class CallbackPayload:
    payment_reference: str
    status: CallbackStatus
    processor_transaction_id: Optional[str] = None
    merchant_id: Optional[str] = None
    signature: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    tran_type: Optional[str] = None
    reversal_amount: Optional[str] = None
    response_description: Optional[str] = None
    masked_card: Optional[str] = None
    card_bin: Optional[str] = None
    card_type: Optional[str] = None
    payment_system: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CallbackPayload":
        reference = _text(data.get("order_id"))
        if reference is None:
            raise MalformedRequest("Callback has no order_id")

        raw_status = data.get("order_status")
        try:
            status = CallbackStatus(raw_status)
        except ValueError:
            raise UnrecognizedStatus(f"Unhandled hutko order status: {raw_status!r}") from None

        return cls(
            payment_reference=reference,
            status=status,
            processor_transaction_id=_text(data.get("payment_id")),
            merchant_id=_text(data.get("merchant_id")),
            signature=_text(data.get("signature")),
            amount=_text(data.get("amount")),
            currency=_text(data.get("currency")),
            tran_type=_text(data.get("tran_type")),
            reversal_amount=_text(data.get("reversal_amount")),
            response_description=_text(data.get("response_description")),
            masked_card=_text(data.get("masked_card")),
            card_bin=_text(data.get("card_bin")),
            card_type=_text(data.get("card_type")),
            payment_system=_text(data.get("payment_system")),
            raw=dict(data),
        )

    @property
    def is_reversal(self) -> bool:
        return (
            not _is_blank(self.reversal_amount)
            or self.tran_type == "reverse"
            or self.status is CallbackStatus.REVERSED
        )
