import json

from coauthor.services.payment_gateway import compute_checksum, encode_payload

SALT_KEY = "test-salt-key"
MERCHANT_ID = "MERCHANTUAT"


class FakeResponse:
    def __init__(self, body, status_code=200):
        self._body = body
        self.status_code = status_code
        self.text = "<html>bad gateway</html>" if isinstance(body, Exception) else json.dumps(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeHttp:
    """Stands in for requests.request; replies from a queue and records every call."""

    def __init__(self):
        self.calls = []
        self.replies = []

    def reply(self, body=None, status_code=200, exc=None):
        self.replies.append((body, status_code, exc))

    def __call__(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        body, status_code, exc = self.replies.pop(0)
        if exc is not None:
            raise exc
        return FakeResponse(body, status_code)


def signed_webhook(payload, salt_key=SALT_KEY, key_index=1):
    """Body and X-VERIFY header the way the wallet gateway sends its callback."""
    encoded = encode_payload(payload)
    return {"response": encoded}, compute_checksum(encoded, salt_key, key_index)


def webhook_payload(transaction_id, state="COMPLETED", response_code="SUCCESS", amount=900000):
    return {
        "success": state == "COMPLETED",
        "code": "PAYMENT_SUCCESS" if state == "COMPLETED" else "PAYMENT_ERROR",
        "data": {
            "merchantId": MERCHANT_ID,
            "merchantTransactionId": transaction_id,
            "transactionId": "T2409181234",
            "amount": amount,
            "state": state,
            "responseCode": response_code,
        },
    }


def status_response(transaction_id, state="COMPLETED", response_code="SUCCESS", success=True, code=None):
    return {
        "success": success,
        "code": code or ("PAYMENT_SUCCESS" if state == "COMPLETED" else "PAYMENT_PENDING"),
        "data": {
            "merchantTransactionId": transaction_id,
            "transactionId": "T2409181234",
            "state": state,
            "responseCode": response_code,
        } if success else None,
    }
