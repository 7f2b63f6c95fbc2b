# coauthor/services/bank_verify_gateway.py
import logging
from typing import Optional

from coauthor.config import settings
from coauthor.models.authorship_purchase import AuthorshipPurchase, PaymentMethod
from coauthor.schemas.payment_schemas import GatewayOutcome, PayerInfo
from coauthor.services.errors import BankVerificationFailed, ValidationError
from coauthor.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


class BankVerifyGateway(PaymentGateway):
    """Cashfree synchronous bank account verification."""

    method = PaymentMethod.bank_verify.value
    transaction_prefix = "CF"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        verify_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout=timeout)
        self.client_id = client_id if client_id is not None else settings.CASHFREE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.CASHFREE_CLIENT_SECRET
        self.verify_url = verify_url or settings.CASHFREE_VERIFY_URL

    def initiate(
        self,
        purchase: AuthorshipPurchase,
        amount: int,
        payer: PayerInfo,
        transaction_id: str,
    ) -> GatewayOutcome:
        if not payer.bank_account or not payer.ifsc:
            raise ValidationError("Bank account and IFSC are required", field="bank_account_number")

        payload = {
            "bank_account": payer.bank_account,
            "ifsc": payer.ifsc,
            "name": payer.name,
            "phone": payer.phone_number,
        }
        headers = {
            "Content-Type": "application/json",
            "x-client-id": self.client_id,
            "x-client-secret": self.client_secret,
        }

        logger.info(f"Verifying bank account for purchase {purchase.id} (txn {transaction_id})")
        result = self._request("POST", self.verify_url, json=payload, headers=headers)

        if result.get("account_status") != "VALID":
            reason = result.get("account_status_code") or result.get("account_status")
            logger.info(f"Bank verification failed for purchase {purchase.id}: {reason}")
            raise BankVerificationFailed(
                f"Bank verification failed: {reason or 'Invalid bank details'}",
                reason_code=reason,
                raw_response=result,
            )

        return GatewayOutcome(
            payment_id=transaction_id,
            status="completed",
            gateway_transaction_id=result.get("utr"),
            raw_response=result,
        )
