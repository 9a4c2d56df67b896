"""Two requests racing for the same code: exactly one wins."""
import threading

import pyotp

from mfa_gate import db
from mfa_gate.models import Account, BackupCode, EmailOtp, OtpResult
from conftest import PASSWORD


def _create_account(email):
    account = Account(email=email, mfa_required=True)
    account.set_password(PASSWORD)
    account.totp_secret = pyotp.random_base32()
    account.mfa_totp_enabled = True
    account.mfa_email_enabled = True
    account.sync_enrollment_state()
    db.session.add(account)
    db.session.commit()
    return account.id


def run_together(app, fn, workers=2):
    """Call ``fn`` from several threads at once, each in its own app context."""
    barrier = threading.Barrier(workers)
    results = []
    errors = []

    def worker():
        with app.app_context():
            try:
                barrier.wait(timeout=10)
                results.append(fn())
            except Exception as error:
                errors.append(error)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    return results


def test_same_backup_code_consumed_concurrently(file_app):
    with file_app.app_context():
        user_id = _create_account('race-backup@example.com')
        code = BackupCode.generate(user_id)[0]

    results = run_together(file_app, lambda: BackupCode.consume(user_id, code))

    assert sorted(results, key=lambda r: r is None) == [9, None]
    with file_app.app_context():
        assert BackupCode.remaining(user_id) == 9


def test_same_email_code_verified_concurrently(file_app):
    with file_app.app_context():
        user_id = _create_account('race-otp@example.com')
        _, code = EmailOtp.create_for_user(user_id)

    results = run_together(file_app, lambda: EmailOtp.verify(user_id, code))

    assert len(results) == 2
    assert set(results) == {OtpResult.OK, OtpResult.ALREADY_USED}
