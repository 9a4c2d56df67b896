"""
Seed script to create a first admin and a demo client account.
Run from backend/: python seed.py
"""
import os
import sys
sys.path.insert(0, os.path.dirname(__file__))

from mfa_gate import create_app, db
from mfa_gate.models import Account, Role

ACCOUNTS = [
    # email, role, MFA required before first use
    ('admin@mfa-gate.local', Role.ADMIN, True),
    ('client@mfa-gate.local', Role.CLIENT, False),
]


def seed():
    password = os.getenv('SEED_PASSWORD')
    if not password:
        raise RuntimeError('Set SEED_PASSWORD to the initial password for seeded accounts')

    app = create_app()
    with app.app_context():
        for email, role, mfa_required in ACCOUNTS:
            existing = Account.find_by_email(email)
            if existing:
                print(f"  Account '{email}' already exists (id={existing.id}), skipping.")
                continue
            account = Account(email=email, role=role, mfa_required=mfa_required)
            account.set_password(password)
            account.sync_enrollment_state()
            db.session.add(account)
            db.session.commit()
            print(f"  Created {role} account (id={account.id}, email={email}, state={account.mfa_state})")

        print("\nDone.")


if __name__ == "__main__":
    seed()
