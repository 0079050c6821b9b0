from dotenv import load_dotenv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

load_dotenv(".env")

import argparse
import logging
from collections import Counter
from datetime import timedelta

from app.core.database import SessionLocal
from app.core.settings import settings
from app.models import credit_bundle, interest, notification, property, transaction, user  # noqa: F401
from app.services import ledger
from app.services.notifications import dispatch_pending
from app.services.paystack import get_gateway
from app.services.settlement import settle_payment


logger = logging.getLogger("reconcile")


def reconcile(db, gateway, *, grace_minutes: int, limit: int, dry_run: bool = False) -> Counter:
    cutoff = ledger.utcnow() - timedelta(minutes=grace_minutes)
    outcomes: Counter = Counter()
    for tx in ledger.pending_purchases(db, older_than=cutoff, limit=limit):
        if dry_run:
            logger.info("reconcile.pending transaction_id=%s reference=%s user_id=%s", tx.id, tx.reference, tx.user_id)
            outcomes["pending"] += 1
            continue
        outcome = settle_payment(db, gateway, tx.reference or tx.id, source="reconcile")
        name = type(outcome).__name__
        outcomes[name] += 1
        logger.info("reconcile.outcome transaction_id=%s reference=%s outcome=%s", tx.id, tx.reference, name)
    return outcomes


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Settle credit purchases left pending by a missed webhook or redirect.")
    parser.add_argument("--grace-minutes", type=int, default=settings.reconcile_grace_minutes)
    parser.add_argument("--limit", type=int, default=200)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    gateway = get_gateway()
    if not gateway.configured and not args.dry_run:
        logger.error("reconcile.aborted reason=PAYSTACK_SECRET_KEY not set")
        return 2

    db = SessionLocal()
    try:
        outcomes = reconcile(db, gateway, grace_minutes=args.grace_minutes, limit=args.limit, dry_run=args.dry_run)
        if not args.dry_run:
            delivered = dispatch_pending(db)
            outcomes["notifications_dispatched"] = len(delivered)
        drift = ledger.ledger_drift(db)
        for row in drift:
            logger.warning("reconcile.ledger_drift user_id=%s balance=%s ledger=%s", row["user_id"], row["balance"], row["ledger"])
    finally:
        db.close()

    print(dict(outcomes))
    return 1 if drift else 0


if __name__ == "__main__":
    raise SystemExit(main())
