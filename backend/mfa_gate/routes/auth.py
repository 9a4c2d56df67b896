"""
Login, second-factor completion and session routes.
"""
from flask import Blueprint, request, jsonify, g
from mfa_gate import db
from mfa_gate.models import Account
from mfa_gate.services import credential_gate, session as auth_session
from mfa_gate.services.challenge import Challenge, VerificationAttempt, Method
from mfa_gate.services.credential_gate import LoginOutcome
from mfa_gate.utils.audit_logger import audit_log, audit_access
from mfa_gate.utils.auth import login_required
from mfa_gate.utils.rate_limiter import rate_limit_login
from mfa_gate.utils.validators import (
    validate_login, validate_code_payload, validate_challenge_payload,
)

auth_bp = Blueprint('auth', __name__)


def session_user_payload(ctx):
    """Account object for the current session, with impersonation context."""
    account = db.session.get(Account, ctx.account_id)
    data = account.to_dict()
    data['mfaVerified'] = ctx.mfa_verified
    data['isImpersonating'] = bool(ctx.impersonating)
    if ctx.impersonating:
        target = db.session.get(Account, ctx.target_id)
        data['impersonatedUser'] = target.to_dict() if target else None
    return data


def complete_login(result):
    """Turn a verified challenge into a session and the login response."""
    ctx = auth_session.materialize(result.account)
    data = session_user_payload(ctx)
    data['usedBackupCode'] = result.used_backup_code
    if result.used_backup_code:
        data['backupCodesRemaining'] = result.backup_codes_remaining
    return jsonify(data), 200


@auth_bp.route('/login', methods=['POST'])
@rate_limit_login
def login():
    """Password step. Answers with a challenge, a setup requirement or a session."""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    errors = validate_login(data)
    if errors:
        return jsonify({'error': errors}), 400

    result = credential_gate.authenticate(data['email'], data['password'])
    account = result.account

    if result.outcome is LoginOutcome.CHALLENGE_ISSUED:
        methods = result.available_methods
        return jsonify({
            'mfaRequired': True,
            'userId': account.id,
            'email': account.email,
            'mfaTotp': methods['totp'],
            'mfaEmail': methods['email'],
            'challengeToken': result.challenge.to_token(),
            'message': 'MFA verification required',
        }), 200

    if result.outcome is LoginOutcome.SETUP_REQUIRED:
        auth_session.begin_setup_session(account)
        payload = account.to_dict()
        payload['mfaSetupRequired'] = True
        payload['message'] = 'MFA setup required for account security'
        return jsonify(payload), 200

    ctx = auth_session.materialize(account)
    return jsonify(session_user_payload(ctx)), 200


@auth_bp.route('/login/mfa', methods=['POST'])
def login_mfa():
    """Complete login with an authenticator code or a backup code."""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    errors = validate_challenge_payload(data) + validate_code_payload(data)
    if errors:
        return jsonify({'error': errors}), 400

    method = data.get('method', Method.TOTP.value)
    if method not in (Method.TOTP.value, Method.BACKUP.value):
        return jsonify({'error': 'method must be totp or backup'}), 400

    challenge = Challenge.from_token(data['challengeToken'])
    result = challenge.verify(VerificationAttempt(method, data['code']))
    return complete_login(result)


@auth_bp.route('/login/cancel', methods=['POST'])
def cancel_login():
    data = request.get_json(silent=True) or {}
    errors = validate_challenge_payload(data)
    if errors:
        return jsonify({'error': errors}), 400

    Challenge.from_token(data['challengeToken']).cancel()
    return jsonify({'message': 'Login cancelled'}), 200


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    audit_log('LOGOUT', 'session', resource_id=str(g.account_id))
    auth_session.end()
    return jsonify({'message': 'Logged out successfully'}), 200


@auth_bp.route('/auth/user', methods=['GET'])
@login_required
@audit_access('READ', 'session')
def current_user():
    data = session_user_payload(g.session_ctx)
    data['setupPending'] = g.session_ctx.setup_pending
    data['effectiveAccountId'] = auth_session.effective_account_id()
    return jsonify(data), 200
