# coauthor/services/payment_gateway.py
import base64
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import uuid4

import requests

from coauthor.config import settings
from coauthor.models.authorship_purchase import AuthorshipPurchase
from coauthor.schemas.payment_schemas import GatewayOutcome, PayerInfo
from coauthor.services.errors import GatewayRejected, GatewayTimeout

logger = logging.getLogger(__name__)


def new_transaction_id(prefix: str) -> str:
    """Platform transaction id, known before any gateway call."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def encode_payload(payload: Dict[str, Any]) -> str:
    # compact JSON, same bytes the gateway expects from JSON.stringify
    raw = json.dumps(payload, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_payload(encoded: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(encoded).decode("utf-8"))


def compute_checksum(message: str, salt_key: str, key_index: int) -> str:
    digest = hashlib.sha256((message + salt_key).encode("utf-8")).hexdigest()
    return f"{digest}###{key_index}"


class PaymentGateway(ABC):
    """Common HTTP plumbing for the payment gateway adapters."""

    method: str = ""
    transaction_prefix: str = "TXN"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS

    def new_transaction_id(self) -> str:
        return new_transaction_id(self.transaction_prefix)

    @abstractmethod
    def initiate(
        self,
        purchase: AuthorshipPurchase,
        amount: int,
        payer: PayerInfo,
        transaction_id: str,
    ) -> GatewayOutcome:
        """Start a payment and return what the gateway reported."""

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.warning(f"{self.method} gateway timed out: {method} {url}")
            raise GatewayTimeout("Payment gateway timed out", url=url)
        except requests.RequestException as exc:
            logger.error(f"{self.method} gateway unreachable: {exc}")
            raise GatewayRejected(f"Payment gateway unreachable: {exc}")

        try:
            body = response.json()
        except ValueError:
            logger.error(
                f"{self.method} gateway returned non-JSON ({response.status_code}): "
                f"{response.text[:500]}"
            )
            raise GatewayRejected(
                "Payment gateway returned an invalid response",
                raw_response={"status_code": response.status_code, "text": response.text[:500]},
            )

        logger.info(f"{self.method} gateway response ({response.status_code}): {body}")
        return body
