import json
import unittest
from unittest import mock

import requests

from app.services.paystack import (
    PaystackClient,
    VerifyResult,
    compute_signature,
    generate_reference,
    verify_webhook_signature,
)


def _response(body):
    resp = mock.Mock()
    resp.json.return_value = body
    return resp


class TestWebhookSignature(unittest.TestCase):
    def test_valid_signature(self):
        raw = json.dumps({"event": "charge.success"}).encode("utf-8")
        sig = compute_signature("sk_test_secret", raw)
        self.assertEqual(len(sig), 128)
        self.assertTrue(verify_webhook_signature("sk_test_secret", raw, sig))

    def test_tampered_body(self):
        raw = b'{"event":"charge.success","data":{"amount":100}}'
        sig = compute_signature("sk_test_secret", raw)
        self.assertFalse(verify_webhook_signature("sk_test_secret", raw.replace(b"100", b"999"), sig))

    def test_missing_secret_or_signature(self):
        raw = b"{}"
        self.assertFalse(verify_webhook_signature(None, raw, compute_signature("x", raw)))
        self.assertFalse(verify_webhook_signature("x", raw, None))
        self.assertFalse(verify_webhook_signature("x", raw, ""))


class TestReference(unittest.TestCase):
    def test_format_and_uniqueness(self):
        refs = {generate_reference("CREDIT") for _ in range(50)}
        self.assertEqual(len(refs), 50)
        for ref in refs:
            prefix, stamp, rand = ref.split("_")
            self.assertEqual(prefix, "CREDIT")
            self.assertTrue(stamp.isalnum())
            self.assertEqual(len(rand), 6)


class TestPaystackClient(unittest.TestCase):
    def test_unconfigured_client_never_calls_out(self):
        http = mock.Mock()
        client = PaystackClient(None, http=http)
        self.assertFalse(client.configured)
        self.assertFalse(client.verify("ref").ok)
        self.assertFalse(client.initialize(email="a@b.c", amount_minor=100, reference="ref").ok)
        http.request.assert_not_called()

    def test_initialize_success(self):
        http = mock.Mock()
        http.request.return_value = _response(
            {
                "status": True,
                "message": "Authorization URL created",
                "data": {"authorization_url": "https://checkout.paystack.com/abc", "access_code": "abc", "reference": "REF1"},
            }
        )
        client = PaystackClient("sk_test", base_url="https://api.paystack.co/", http=http)
        result = client.initialize(
            email="agent@example.com", amount_minor=200000, reference="REF1", metadata={"transaction_id": "tx-1"}, callback_url="https://app/cb"
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.access_code, "abc")

        args, kwargs = http.request.call_args
        self.assertEqual(args, ("POST", "https://api.paystack.co/transaction/initialize"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk_test")
        self.assertEqual(kwargs["json"]["amount"], 200000)
        self.assertEqual(kwargs["json"]["callback_url"], "https://app/cb")
        self.assertEqual(kwargs["json"]["metadata"], {"transaction_id": "tx-1"})

    def test_initialize_rejected(self):
        http = mock.Mock()
        http.request.return_value = _response({"status": False, "message": "Invalid key"})
        result = PaystackClient("sk_test", http=http).initialize(email="a@b.c", amount_minor=100, reference="R")
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Invalid key")

    def test_verify_success(self):
        http = mock.Mock()
        http.request.return_value = _response(
            {
                "status": True,
                "message": "Verification successful",
                "data": {
                    "id": 4099260516,
                    "status": "success",
                    "reference": "REF1",
                    "amount": 200000,
                    "currency": "NGN",
                    "channel": "card",
                    "paid_at": "2026-10-19T10:00:00.000Z",
                    "metadata": {"transaction_id": "tx-1"},
                },
            }
        )
        result = PaystackClient("sk_test", http=http).verify("REF 1")
        self.assertTrue(result.ok)
        self.assertEqual(result.status, "success")
        self.assertEqual(result.amount, 200000)
        self.assertEqual(result.payment_id, "4099260516")
        self.assertEqual(result.metadata, {"transaction_id": "tx-1"})
        self.assertTrue(http.request.call_args[0][1].endswith("/transaction/verify/REF%201"))

    def test_verify_transport_error(self):
        http = mock.Mock()
        http.request.side_effect = requests.ConnectionError("boom")
        result = PaystackClient("sk_test", http=http).verify("REF1")
        self.assertFalse(result.ok)
        self.assertEqual(result.message, "Failed to verify payment")

    def test_verify_unreadable_body(self):
        http = mock.Mock()
        resp = mock.Mock()
        resp.json.side_effect = ValueError("not json")
        http.request.return_value = resp
        self.assertFalse(PaystackClient("sk_test", http=http).verify("REF1").ok)

    def test_payload_with_odd_fields(self):
        result = VerifyResult.from_payload({"status": "FAILED", "amount": "abc", "metadata": "[]"})
        self.assertEqual(result.status, "failed")
        self.assertIsNone(result.amount)
        self.assertEqual(result.metadata, {})


if __name__ == "__main__":
    unittest.main()
