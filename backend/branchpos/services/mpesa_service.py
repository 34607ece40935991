# Overview: Adapter for the M-Pesa (Daraja) STK push API; the payment gateway is an external collaborator.

"""
Mobile-money payment gateway adapter.

Interface (both implementations):
- get_access_token()
- initiate_push_payment(phone, amount, reference, description) -> PushPaymentResult
- query_payment_status(checkout_id) -> PaymentStatus
- validate_callback(payload) -> CallbackResult

MpesaGateway talks to Daraja over HTTP (httpx). MockMpesaGateway never leaves
the process and is the default for development (MPESA_MODE=mock).

Amounts are whole currency units; Daraja rejects fractional amounts.
"""

from __future__ import annotations

import base64
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from flask import current_app

from ..time_utils import gateway_timestamp
from ..validation import ValidationError


SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"

# Status query answers HTTP 500 with this code while the customer has not responded yet
QUERY_PENDING_ERROR_CODE = "500.001.1001"

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED = "FAILED"
STATUS_PENDING = "PENDING"

_PHONE_RE = re.compile(r"^254[17]\d{8}$")


class PaymentGatewayError(Exception):
    """Gateway refused a request or could not be reached."""


@dataclass(frozen=True)
class PushPaymentResult:
    checkout_id: str
    merchant_request_id: str | None
    response_code: str | None = None
    response_description: str | None = None
    customer_message: str | None = None


@dataclass(frozen=True)
class PaymentStatus:
    state: str
    result_code: str | None
    description: str | None

    @property
    def success(self) -> bool:
        return self.state == STATUS_SUCCESS

    @property
    def pending(self) -> bool:
        return self.state == STATUS_PENDING


@dataclass(frozen=True)
class CallbackResult:
    valid: bool
    success: bool = False
    error: str | None = None
    result_code: str | None = None
    result_desc: str | None = None
    checkout_id: str | None = None
    merchant_request_id: str | None = None
    amount: int | None = None
    receipt_number: str | None = None
    transaction_date: str | None = None
    phone: str | None = None
    metadata: dict = field(default_factory=dict)


def format_phone_number(phone: Any) -> str:
    """
    Normalize a Kenyan mobile number to 2547XXXXXXXX / 2541XXXXXXXX.

    Accepts "0712 345 678", "+254712345678", "712345678", ...
    Raises ValidationError for anything that does not normalize to a valid number.
    """
    if phone is None:
        raise ValidationError("Phone number is required")
    cleaned = re.sub(r"[\s\-+()]", "", str(phone))
    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    elif not cleaned.startswith("254"):
        cleaned = "254" + cleaned

    if not _PHONE_RE.match(cleaned):
        raise ValidationError(f"Invalid phone number: {phone}")
    return cleaned


def parse_callback(payload: Any) -> CallbackResult:
    """Parse the Body.stkCallback envelope that Daraja posts to the callback URL."""
    if not isinstance(payload, dict):
        return CallbackResult(valid=False, error="Invalid callback format")
    body = (payload.get("Body") or {}).get("stkCallback") if isinstance(payload.get("Body"), dict) else None
    if not isinstance(body, dict):
        return CallbackResult(valid=False, error="Invalid callback format")

    checkout_id = body.get("CheckoutRequestID")
    result_code = body.get("ResultCode")
    if not checkout_id or result_code is None:
        return CallbackResult(valid=False, error="Callback missing CheckoutRequestID or ResultCode")

    metadata: dict[str, Any] = {}
    items = (body.get("CallbackMetadata") or {}).get("Item") or []
    for item in items:
        if isinstance(item, dict) and "Name" in item:
            metadata[item["Name"]] = item.get("Value")

    amount = metadata.get("Amount")
    if amount is not None:
        try:
            amount = int(round(float(amount)))
        except (TypeError, ValueError):
            return CallbackResult(valid=False, checkout_id=checkout_id, error=f"Invalid callback amount: {amount!r}")
    phone = metadata.get("PhoneNumber")
    return CallbackResult(
        valid=True,
        success=str(result_code) == "0",
        result_code=str(result_code),
        result_desc=body.get("ResultDesc"),
        checkout_id=checkout_id,
        merchant_request_id=body.get("MerchantRequestID"),
        amount=amount,
        receipt_number=metadata.get("MpesaReceiptNumber"),
        transaction_date=str(metadata["TransactionDate"]) if metadata.get("TransactionDate") is not None else None,
        phone=str(phone) if phone is not None else None,
        metadata=metadata,
    )


class MpesaGateway:
    """Live Daraja client."""

    def __init__(
        self,
        *,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_url: str,
        environment: str = "sandbox",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.base_url = PRODUCTION_BASE_URL if environment == "production" else SANDBOX_BASE_URL
        self.timeout = timeout
        self._transport = transport
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def get_access_token(self) -> str:
        """OAuth client-credentials token, cached until shortly before expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            with self._client() as client:
                response = client.get(
                    "/oauth/v1/generate",
                    params={"grant_type": "client_credentials"},
                    auth=(self.consumer_key, self.consumer_secret),
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentGatewayError("M-Pesa authentication failed") from exc

        token = data.get("access_token")
        if not token:
            raise PaymentGatewayError("M-Pesa authentication failed")
        expires_in = int(data.get("expires_in", 3599))
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - 60, 0)
        return token

    def initiate_push_payment(self, phone: str, amount: int, reference: str, description: str) -> PushPaymentResult:
        formatted_phone = format_phone_number(phone)
        timestamp = gateway_timestamp()
        token = self.get_access_token()

        body = {
            "BusinessShortCode": self.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(amount),
            "PartyA": formatted_phone,
            "PartyB": self.shortcode,
            "PhoneNumber": formatted_phone,
            "CallBackURL": self.callback_url,
            "AccountReference": reference[:12],
            "TransactionDesc": description[:13],
        }

        try:
            with self._client() as client:
                response = client.post(
                    "/mpesa/stkpush/v1/processrequest",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentGatewayError("Failed to reach M-Pesa") from exc

        if response.status_code >= 400 or str(data.get("ResponseCode")) != "0":
            message = data.get("errorMessage") or data.get("ResponseDescription") or "Failed to initiate payment"
            raise PaymentGatewayError(message)

        return PushPaymentResult(
            checkout_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID"),
            response_code=str(data.get("ResponseCode")),
            response_description=data.get("ResponseDescription"),
            customer_message=data.get("CustomerMessage"),
        )

    def query_payment_status(self, checkout_id: str) -> PaymentStatus:
        """
        Ask Daraja for the outcome of a push request.

        Raises PaymentGatewayError when the gateway cannot be reached; callers
        treat that as "not known yet", never as a failed payment.
        """
        timestamp = gateway_timestamp()
        token = self.get_access_token()
        body = {
            "BusinessShortCode": self.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_id,
        }

        try:
            with self._client() as client:
                response = client.post(
                    "/mpesa/stkpushquery/v1/query",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PaymentGatewayError("Failed to query M-Pesa") from exc

        if data.get("errorCode") == QUERY_PENDING_ERROR_CODE:
            return PaymentStatus(STATUS_PENDING, None, data.get("errorMessage"))
        if response.status_code >= 500:
            raise PaymentGatewayError(data.get("errorMessage") or f"M-Pesa returned HTTP {response.status_code}")

        result_code = data.get("ResultCode")
        if result_code is None:
            return PaymentStatus(STATUS_PENDING, None, data.get("errorMessage") or data.get("ResponseDescription"))

        result_code = str(result_code)
        state = STATUS_SUCCESS if result_code == "0" else STATUS_FAILED
        return PaymentStatus(state, result_code, data.get("ResultDesc"))

    def validate_callback(self, payload: Any) -> CallbackResult:
        return parse_callback(payload)


class MockMpesaGateway:
    """
    In-process stand-in for development.

    Push requests are always accepted; status queries answer with the
    configured outcome ("success", "failed" or "pending").
    """

    def __init__(self, *, result: str = "success"):
        self.result = result

    def get_access_token(self) -> str:
        return f"mock_access_token_{int(time.time())}"

    def initiate_push_payment(self, phone: str, amount: int, reference: str, description: str) -> PushPaymentResult:
        formatted_phone = format_phone_number(phone)
        checkout_id = f"ws_CO_{int(time.time() * 1000)}{secrets.token_hex(4)}"
        current_app.logger.info(
            "Mock STK push initiated phone=%s amount=%s reference=%s checkout=%s",
            formatted_phone, amount, reference, checkout_id,
        )
        return PushPaymentResult(
            checkout_id=checkout_id,
            merchant_request_id=f"merchant_{int(time.time() * 1000)}",
            response_code="0",
            response_description="Success. Request accepted for processing",
            customer_message="Success. Request accepted for processing",
        )

    def query_payment_status(self, checkout_id: str) -> PaymentStatus:
        if self.result == "failed":
            return PaymentStatus(STATUS_FAILED, "1032", "Request cancelled by user")
        if self.result == "pending":
            return PaymentStatus(STATUS_PENDING, None, "The transaction is being processed")
        return PaymentStatus(STATUS_SUCCESS, "0", "The service request is processed successfully.")

    def validate_callback(self, payload: Any) -> CallbackResult:
        return parse_callback(payload)


def build_gateway(config) -> MpesaGateway | MockMpesaGateway:
    """Construct the gateway selected by MPESA_MODE."""
    mode = config.get("MPESA_MODE", "mock")
    if mode == "live":
        return MpesaGateway(
            consumer_key=config["MPESA_CONSUMER_KEY"],
            consumer_secret=config["MPESA_CONSUMER_SECRET"],
            shortcode=config["MPESA_SHORTCODE"],
            passkey=config["MPESA_PASSKEY"],
            callback_url=config["MPESA_CALLBACK_URL"],
            environment=config.get("MPESA_ENVIRONMENT", "sandbox"),
            timeout=config.get("MPESA_TIMEOUT_SECONDS", 30.0),
        )
    if mode == "mock":
        return MockMpesaGateway(result=config.get("MPESA_MOCK_RESULT", "success"))
    raise ValueError(f"Unknown MPESA_MODE: {mode!r} (expected 'mock' or 'live')")


def get_payment_gateway():
    """The gateway bound to the running app (see create_app)."""
    return current_app.extensions["payment_gateway"]
