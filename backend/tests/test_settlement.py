import os
import shutil
import tempfile
import unittest

from app.models.notification import NotificationOutbox
from app.models.transaction import Transaction
from app.services import ledger
from app.services.paystack import VerifyResult
from app.services.settlement import (
    AlreadySettled,
    AmountMismatch,
    NotFound,
    PaymentFailed,
    PaymentPending,
    Settled,
    UpstreamFailure,
    apply_settlement,
    handle_webhook_event,
    settle_payment,
)

from support import FakeGateway, add_user, make_session_factory, success_payment


class SettlementTestCase(unittest.TestCase):
    db_url = "sqlite://"

    def setUp(self):
        self.engine, self.Session = make_session_factory(self.db_url)
        self.db = self.Session()
        ledger.seed_default_bundles(self.db)
        add_user(self.db, "agent-1", credits=0)
        bundle = ledger.get_active_bundle(self.db, "bundle-2")
        self.tx = ledger.create_pending_purchase(self.db, "agent-1", bundle, "CREDIT_REF1")
        self.gateway = FakeGateway()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def outbox_count(self, db=None):
        return (db or self.db).query(NotificationOutbox).count()


class TestSettlePayment(SettlementTestCase):
    def test_success_credits_bundle_once(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000)

        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(outcome, Settled)
        self.assertEqual(outcome.credits_added, 30)
        self.assertEqual(outcome.previous_balance, 0)
        self.assertEqual(outcome.new_balance, 30)
        self.assertEqual(outcome.transaction.status, "completed")
        self.assertIsNotNone(outcome.transaction.completed_at)
        self.assertEqual(outcome.transaction.event_metadata["paystack_id"], "4099260516")
        self.assertEqual(outcome.transaction.event_metadata["bundle_id"], "bundle-2")
        self.assertEqual(self.outbox_count(), 1)

        again = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(again, AlreadySettled)
        self.assertEqual(again.balance, 30)
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 30)
        self.assertEqual(self.outbox_count(), 1)
        # Completed transactions short-circuit before the gateway.
        self.assertEqual(self.gateway.verify_calls, ["CREDIT_REF1"])

    def test_lookup_by_transaction_id(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000)
        outcome = settle_payment(self.db, self.gateway, self.tx.id)
        self.assertIsInstance(outcome, Settled)
        self.assertEqual(self.gateway.verify_calls, ["CREDIT_REF1"])

    def test_unknown_reference_matched_through_gateway_metadata(self):
        self.gateway.payments["T_GATEWAY_REF"] = success_payment(
            "T_GATEWAY_REF", 200000, metadata={"transaction_id": self.tx.id}
        )
        outcome = settle_payment(self.db, self.gateway, "T_GATEWAY_REF")
        self.assertIsInstance(outcome, Settled)
        self.assertEqual(outcome.transaction.id, self.tx.id)

    def test_unknown_reference_everywhere(self):
        self.gateway.payments["NOPE"] = success_payment("NOPE", 200000)
        outcome = settle_payment(self.db, self.gateway, "NOPE")
        self.assertIsInstance(outcome, NotFound)
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 0)

    def test_user_scoped_lookup(self):
        add_user(self.db, "agent-2")
        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1", user_id="agent-2")
        self.assertIsInstance(outcome, UpstreamFailure)
        self.assertEqual(self.db.query(Transaction).filter(Transaction.id == self.tx.id).one().status, "pending")

    def test_gateway_unreachable(self):
        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(outcome, UpstreamFailure)
        self.db.refresh(self.tx)
        self.assertEqual(self.tx.status, "pending")
        self.assertEqual(self.outbox_count(), 0)

    def test_failed_payment_marks_transaction(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000, status="failed")
        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(outcome, PaymentFailed)
        self.db.refresh(self.tx)
        self.assertEqual(self.tx.status, "failed")
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 0)

        # Failed is terminal; a later success report does not revive it.
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000)
        self.assertIsInstance(settle_payment(self.db, self.gateway, "CREDIT_REF1"), PaymentFailed)
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 0)

    def test_abandoned_payment_stays_pending(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000, status="abandoned")
        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(outcome, PaymentPending)
        self.assertEqual(outcome.status, "abandoned")
        self.db.refresh(self.tx)
        self.assertEqual(self.tx.status, "pending")

    def test_amount_mismatch_leaves_pending(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 100000)
        outcome = settle_payment(self.db, self.gateway, "CREDIT_REF1")
        self.assertIsInstance(outcome, AmountMismatch)
        self.assertEqual(outcome.expected_amount, 200000)
        self.assertEqual(outcome.reported_amount, 100000)
        self.db.refresh(self.tx)
        self.assertEqual(self.tx.status, "pending")
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 0)

    def test_missing_user_rolls_back_claim(self):
        self.db.add(
            Transaction(
                id="tx-orphan",
                user_id="ghost",
                type="credit_purchase",
                amount=1000,
                credits=10,
                status="pending",
                gateway="paystack",
                reference="CREDIT_ORPHAN",
            )
        )
        self.db.commit()
        self.gateway.payments["CREDIT_ORPHAN"] = success_payment("CREDIT_ORPHAN", 100000)
        outcome = settle_payment(self.db, self.gateway, "CREDIT_ORPHAN")
        self.assertIsInstance(outcome, NotFound)
        self.assertEqual(outcome.message, "User not found")
        self.assertEqual(self.db.query(Transaction).filter(Transaction.id == "tx-orphan").one().status, "pending")

    def test_spend_rows_are_not_settleable(self):
        spend = ledger.record_spend(self.db, "agent-1", 5, "Unlocked interest")
        self.db.commit()
        outcome = settle_payment(self.db, self.gateway, spend.id)
        self.assertIsInstance(outcome, UpstreamFailure)


class TestWebhookEvent(SettlementTestCase):
    def event(self, name="charge.success", amount=200000, reference="CREDIT_REF1", **data):
        payload = {"id": 4099260516, "status": "success", "reference": reference, "amount": amount, "channel": "card"}
        payload.update(data)
        return {"event": name, "data": payload}

    def test_charge_success_settles_without_calling_gateway(self):
        outcome = handle_webhook_event(self.db, self.gateway, self.event())
        self.assertIsInstance(outcome, Settled)
        self.assertEqual(outcome.transaction.event_metadata["settled_via"], "webhook")
        self.assertEqual(self.gateway.verify_calls, [])

    def test_redelivery_is_a_no_op(self):
        handle_webhook_event(self.db, self.gateway, self.event())
        outcome = handle_webhook_event(self.db, self.gateway, self.event())
        self.assertIsInstance(outcome, AlreadySettled)
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 30)

    def test_other_events_ignored(self):
        self.assertIsNone(handle_webhook_event(self.db, self.gateway, self.event(name="transfer.success")))
        self.assertIsNone(handle_webhook_event(self.db, self.gateway, {"event": "charge.success", "data": "x"}))
        self.db.refresh(self.tx)
        self.assertEqual(self.tx.status, "pending")

    def test_webhook_after_verify(self):
        self.gateway.payments["CREDIT_REF1"] = success_payment("CREDIT_REF1", 200000)
        self.assertIsInstance(settle_payment(self.db, self.gateway, "CREDIT_REF1"), Settled)
        outcome = handle_webhook_event(self.db, self.gateway, self.event())
        self.assertIsInstance(outcome, AlreadySettled)
        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 30)


class TestConcurrentSettlement(SettlementTestCase):
    """Two sessions on one file database; only the first claim may credit."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db_url = "sqlite:///" + os.path.join(self.tmpdir, "race.db")
        super().setUp()

    def tearDown(self):
        super().tearDown()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_lost_claim_reports_already_settled(self):
        payment = success_payment("CREDIT_REF1", 200000)
        other = self.Session()
        try:
            stale_tx = other.query(Transaction).filter(Transaction.id == self.tx.id).one()
            self.assertEqual(stale_tx.status, "pending")
            other.commit()

            first = apply_settlement(self.db, self.tx, payment, source="webhook")
            self.assertIsInstance(first, Settled)

            second = apply_settlement(other, stale_tx, payment, source="verify")
            self.assertIsInstance(second, AlreadySettled)
            self.assertEqual(second.balance, 30)
        finally:
            other.close()

        self.assertEqual(ledger.get_balance(self.db, "agent-1"), 30)
        self.assertEqual(self.outbox_count(), 1)
        self.assertEqual(ledger.ledger_drift(self.db, "agent-1"), [])

    def test_two_verifies_from_stale_reads_credit_once(self):
        add_user(self.db, "agent-25", credits=0)
        self.db.add(
            Transaction(
                id="tx-25",
                user_id="agent-25",
                type="credit_purchase",
                amount=2000,
                credits=25,
                status="pending",
                gateway="paystack",
                reference="CREDIT_25",
            )
        )
        self.db.commit()
        self.gateway.payments["CREDIT_25"] = success_payment("CREDIT_25", 200000)

        first, second = self.Session(), self.Session()
        try:
            # Both sessions observe the transaction as pending before either writes.
            self.assertEqual(ledger.find_transaction(first, "CREDIT_25").status, "pending")
            self.assertEqual(ledger.find_transaction(second, "CREDIT_25").status, "pending")
            self.assertEqual(ledger.get_balance(first, "agent-25"), 0)
            self.assertEqual(ledger.get_balance(second, "agent-25"), 0)

            a = settle_payment(first, self.gateway, "CREDIT_25", source="webhook")
            b = settle_payment(second, self.gateway, "CREDIT_25", source="verify")
        finally:
            first.close()
            second.close()

        self.assertIsInstance(a, Settled)
        self.assertEqual(a.new_balance, 25)
        self.assertIsInstance(b, AlreadySettled)
        self.assertEqual(b.balance, 25)
        self.db.expire_all()
        self.assertEqual(ledger.get_balance(self.db, "agent-25"), 25)


if __name__ == "__main__":
    unittest.main()
