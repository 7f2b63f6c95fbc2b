# coauthor/services/wallet_gateway.py
import hmac
import logging
from typing import Any, Dict, Optional

from coauthor.config import settings
from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentMethod
from coauthor.schemas.payment_schemas import GatewayOutcome, PayerInfo
from coauthor.services.errors import GatewayRejected, InvalidSignature
from coauthor.services.payment_gateway import (
    PaymentGateway,
    compute_checksum,
    decode_payload,
    encode_payload,
)

logger = logging.getLogger(__name__)

PAY_PATH = "/pg/v1/pay"
REFUND_PATH = "/pg/v1/refund"
STATUS_PATH = "/pg/v1/status/{merchant_id}/{transaction_id}"


class WalletGateway(PaymentGateway):
    """PhonePe pay-page redirect flow."""

    method = PaymentMethod.wallet.value
    transaction_prefix = "TXN"

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        salt_key: Optional[str] = None,
        key_index: Optional[int] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout=timeout)
        self.merchant_id = merchant_id if merchant_id is not None else settings.PHONEPE_MERCHANT_ID
        self.salt_key = salt_key if salt_key is not None else settings.PHONEPE_SALT_KEY
        self.key_index = key_index if key_index is not None else settings.PHONEPE_KEY_INDEX
        self.base_url = (base_url or settings.PHONEPE_BASE_URL).rstrip("/")

    def checksum(self, message: str) -> str:
        return compute_checksum(message, self.salt_key, self.key_index)

    def _signed_post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        encoded = encode_payload(payload)
        headers = {
            "Content-Type": "application/json",
            "X-VERIFY": self.checksum(encoded + path),
            "accept": "application/json",
        }
        return self._request(
            "POST",
            f"{self.base_url}{path}",
            json={"request": encoded},
            headers=headers,
        )

    def build_pay_payload(
        self,
        purchase: AuthorshipPurchase,
        amount: int,
        payer: PayerInfo,
        transaction_id: str,
    ) -> Dict[str, Any]:
        return {
            "merchantId": self.merchant_id,
            "merchantTransactionId": transaction_id,
            "merchantUserId": f"USER_{purchase.id}",
            "amount": amount * 100,  # paise
            "redirectUrl": f"{settings.FRONTEND_URL}/payment-success?txnId={transaction_id}",
            "redirectMode": "POST",
            "callbackUrl": settings.PHONEPE_CALLBACK_URL,
            "mobileNumber": payer.phone_number,
            "paymentInstrument": {"type": "PAY_PAGE"},
        }

    def initiate(
        self,
        purchase: AuthorshipPurchase,
        amount: int,
        payer: PayerInfo,
        transaction_id: str,
    ) -> GatewayOutcome:
        payload = self.build_pay_payload(purchase, amount, payer, transaction_id)
        result = self._signed_post(PAY_PATH, payload)

        instrument = (result.get("data") or {}).get("instrumentResponse") or {}
        redirect_url = (instrument.get("redirectInfo") or {}).get("url")

        if not result.get("success") or not redirect_url:
            raise GatewayRejected(
                f"Payment initiation failed: {result.get('message') or 'Unknown error'}",
                raw_response=result,
                transaction_id=transaction_id,
            )

        return GatewayOutcome(
            payment_id=transaction_id,
            status="pending",
            redirect_url=redirect_url,
            raw_response=result,
        )

    def check_status(self, transaction_id: str) -> Dict[str, Any]:
        path = STATUS_PATH.format(merchant_id=self.merchant_id, transaction_id=transaction_id)
        headers = {
            "Content-Type": "application/json",
            "X-VERIFY": self.checksum(path),
            "X-MERCHANT-ID": self.merchant_id,
            "accept": "application/json",
        }
        return self._request("GET", f"{self.base_url}{path}", headers=headers)

    def refund(self, original_transaction_id: str, refund_transaction_id: str, amount: int) -> Dict[str, Any]:
        payload = {
            "merchantId": self.merchant_id,
            "merchantTransactionId": refund_transaction_id,
            "originalTransactionId": original_transaction_id,
            "amount": amount * 100,
            "callbackUrl": settings.PHONEPE_REFUND_CALLBACK_URL,
        }
        return self._signed_post(REFUND_PATH, payload)

    def verify_webhook(self, x_verify: Optional[str], body: Dict[str, Any]) -> Dict[str, Any]:
        """Check the callback signature and return the decoded response."""
        if not x_verify:
            raise InvalidSignature("Missing X-VERIFY header")

        if not isinstance(body, dict):
            raise InvalidSignature("Webhook body must be a JSON object")

        encoded = body.get("response")
        if not isinstance(encoded, str) or not encoded:
            raise InvalidSignature("Missing webhook response payload")

        expected = self.checksum(encoded)
        if not hmac.compare_digest(x_verify, expected):
            raise InvalidSignature("Invalid webhook signature")

        try:
            decoded = decode_payload(encoded)
        except ValueError:
            raise InvalidSignature("Malformed webhook payload")

        if not isinstance(decoded, dict):
            raise InvalidSignature("Malformed webhook payload")
        return decoded
