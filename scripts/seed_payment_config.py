"""
Seed (or refresh) the per-step payment configuration.

What it does:
- Upserts the three workflow fees: assessment, document_processing, visa_processing.
- Sets the receiving wallet for each step from --wallet (or PAYMENT_WALLET_ADDRESS).
- Optionally loads a small general question bank so exams can start in dev.

Usage:
  python scripts/seed_payment_config.py --wallet 0xabc... --wallet-type USDT
  python scripts/seed_payment_config.py --with-questions
"""

from __future__ import annotations

import argparse
import os
from decimal import Decimal

from relohire.core.database import SessionLocal
from relohire.models import application, company, generated_document, job, payment, user  # noqa: F401
from relohire.models.question import Question
from relohire.services.payments import PaymentGateway

DEFAULT_FEES: dict[str, tuple[Decimal, str]] = {
    "assessment": (Decimal("75.00"), "Online assessment fee"),
    "document_processing": (Decimal("150.00"), "Document processing and verification fee"),
    "visa_processing": (Decimal("500.00"), "Visa processing and relocation support fee"),
}

GENERAL_QUESTIONS = [
    {
        "text": "Which document is normally required to apply for a work visa?",
        "options": ["Passport", "Library card", "Gym membership", "Utility bill"],
        "correct_answer": "Passport",
    },
    {
        "text": "What does a signed employment contract confirm?",
        "options": ["The terms of employment", "A holiday booking", "A bank loan", "A tax refund"],
        "correct_answer": "The terms of employment",
    },
    {
        "text": "Which of these is a professional way to report a workplace safety issue?",
        "options": ["Tell your supervisor", "Ignore it", "Post it online", "Leave the job"],
        "correct_answer": "Tell your supervisor",
    },
]


def seed_payment_configs(db, *, wallet: str | None, wallet_type: str | None) -> None:
    gateway = PaymentGateway(db)
    for step, (amount, description) in DEFAULT_FEES.items():
        config = gateway.upsert_config(
            step,
            amount_usd=amount,
            description=description,
            wallet_address=wallet,
            wallet_type=wallet_type,
            is_active=True,
        )
        print(f"[config] {config.step}: {config.amount_usd} USD wallet={config.wallet_address or '-'}")


def seed_questions(db) -> int:
    added = 0
    for item in GENERAL_QUESTIONS:
        exists = db.query(Question.id).filter(Question.text == item["text"]).first()
        if exists:
            continue
        db.add(
            Question(
                category="general",
                question_type="objective",
                difficulty="easy",
                text=item["text"],
                options=item["options"],
                correct_answer=item["correct_answer"],
                points=1,
            )
        )
        added += 1
    db.commit()
    return added


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed payment configuration for the workflow steps.")
    parser.add_argument("--wallet", default=os.getenv("PAYMENT_WALLET_ADDRESS"), help="Receiving wallet address.")
    parser.add_argument("--wallet-type", default=os.getenv("PAYMENT_WALLET_TYPE", "USDT"), help="BTC, ETH, USDT or USDC.")
    parser.add_argument("--with-questions", action="store_true", help="Also load the general question bank.")
    args = parser.parse_args()

    if not args.wallet:
        print("Warning: no wallet address given; payments cannot be created until one is configured.")

    with SessionLocal() as db:
        seed_payment_configs(db, wallet=args.wallet, wallet_type=args.wallet_type)
        if args.with_questions:
            print(f"[questions] added={seed_questions(db)}")

    print("Done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
