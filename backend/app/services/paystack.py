"""Paystack client: initialize/verify transactions and check webhook signatures.

Failures never raise. Missing credentials, transport errors and unreadable
responses all come back as a result with ``ok=False`` and a message, and the
caller decides what to do. Nothing here retries.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests

from app.core.settings import settings


logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


@dataclass(frozen=True)
class InitializeResult:
    ok: bool
    message: str
    authorization_url: str | None = None
    access_code: str | None = None
    reference: str | None = None


@dataclass(frozen=True)
class VerifyResult:
    ok: bool
    message: str
    status: str | None = None
    reference: str | None = None
    amount: int | None = None  # minor units (kobo)
    currency: str | None = None
    channel: str | None = None
    paid_at: str | None = None
    payment_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any], message: str = "") -> "VerifyResult":
        meta = data.get("metadata")
        amount = data.get("amount")
        try:
            amount = int(amount) if amount is not None else None
        except (TypeError, ValueError):
            amount = None
        payment_id = data.get("id")
        return cls(
            ok=True,
            message=message,
            status=str(data.get("status") or "").strip().lower() or None,
            reference=str(data.get("reference") or "").strip() or None,
            amount=amount,
            currency=data.get("currency"),
            channel=data.get("channel"),
            paid_at=data.get("paid_at") or data.get("paidAt"),
            payment_id=(str(payment_id) if payment_id is not None else None),
            metadata=(meta if isinstance(meta, dict) else {}),
        )


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_reference(prefix: str = "CREDIT") -> str:
    stamp = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}_{stamp}_{rand}"


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_webhook_signature(secret: str | None, raw_body: bytes, signature: str | None) -> bool:
    sig = (signature or "").strip()
    if not secret or not sig:
        return False
    return hmac.compare_digest(compute_signature(secret, raw_body), sig)


class PaystackClient:
    def __init__(
        self,
        secret_key: str | None,
        *,
        base_url: str = "https://api.paystack.co",
        timeout_s: float = 30,
        http: Any = None,
    ) -> None:
        self.secret_key = (secret_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._http = http or requests

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        resp = self._http.request(
            method,
            f"{self.base_url}{path}",
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=self.timeout_s,
        )
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError("Unexpected Paystack response")
        return body

    def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        reference: str,
        metadata: dict[str, Any] | None = None,
        callback_url: str | None = None,
    ) -> InitializeResult:
        if not self.configured:
            return InitializeResult(ok=False, message="Paystack secret key not configured")
        payload: dict[str, Any] = {
            "email": email,
            "amount": int(amount_minor),
            "reference": reference,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url
        try:
            body = self._request("POST", "/transaction/initialize", payload)
        except (requests.RequestException, ValueError):
            logger.exception("paystack.initialize.error reference=%s", reference)
            return InitializeResult(ok=False, message="Failed to initialize payment")

        data = body.get("data") or {}
        if not body.get("status") or not isinstance(data, dict) or not data.get("authorization_url"):
            return InitializeResult(ok=False, message=str(body.get("message") or "Failed to initialize payment"))
        return InitializeResult(
            ok=True,
            message=str(body.get("message") or ""),
            authorization_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
        )

    def verify(self, reference: str) -> VerifyResult:
        if not self.configured:
            return VerifyResult(ok=False, message="Paystack secret key not configured")
        try:
            body = self._request("GET", f"/transaction/verify/{quote(str(reference), safe='')}")
        except (requests.RequestException, ValueError):
            logger.exception("paystack.verify.error reference=%s", reference)
            return VerifyResult(ok=False, message="Failed to verify payment")

        data = body.get("data")
        if not body.get("status") or not isinstance(data, dict):
            return VerifyResult(ok=False, message=str(body.get("message") or "Payment verification failed"))
        result = VerifyResult.from_payload(data, message=str(body.get("message") or ""))
        logger.info(
            "paystack.verify.ok reference=%s status=%s payment_id=%s",
            result.reference,
            result.status,
            result.payment_id,
        )
        return result


def get_gateway() -> PaystackClient:
    return PaystackClient(
        settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout_s=settings.paystack_timeout_s,
    )
