"""
MFA enrollment, management and email-code login routes.
"""
from flask import Blueprint, request, jsonify, g
from mfa_gate.models import EnrollmentState
from mfa_gate.services import enrollment, session as auth_session
from mfa_gate.services.challenge import Challenge, VerificationAttempt, Method
from mfa_gate.utils.auth import login_required, verified_session_required
from mfa_gate.utils.validators import (
    validate_code_payload, validate_challenge_payload, validate_password_confirmation,
)
from .auth import complete_login

mfa_bp = Blueprint('mfa', __name__)


# ---------- Email code login ----------

@mfa_bp.route('/email/send-login-otp', methods=['POST'])
def send_login_otp():
    """Send (or resend) an email code for the pending challenge. Never echoes the code."""
    data = request.get_json(silent=True) or {}
    errors = validate_challenge_payload(data)
    if errors:
        return jsonify({'error': errors}), 400

    challenge = Challenge.from_token(data['challengeToken'])
    if challenge.method is Method.EMAIL:
        expires_at = challenge.resend()
    else:
        expires_at = challenge.select_method(Method.EMAIL)

    return jsonify({
        'message': 'Verification code sent',
        'challengeToken': challenge.to_token(),
        'expiresAt': expires_at.isoformat() + 'Z',
    }), 200


@mfa_bp.route('/email/verify-login-otp', methods=['POST'])
def verify_login_otp():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Request body is required'}), 400

    errors = validate_challenge_payload(data) + validate_code_payload(data, field='otp')
    if errors:
        return jsonify({'error': errors}), 400

    challenge = Challenge.from_token(data['challengeToken'])
    result = challenge.verify(VerificationAttempt.email(data['otp']))
    return complete_login(result)


# ---------- Enrollment ----------

@mfa_bp.route('/status', methods=['GET'])
@login_required
def status():
    return jsonify(enrollment.mfa_status(g.account)), 200


@mfa_bp.route('/setup/totp', methods=['POST'])
@login_required
def setup_totp():
    """Generate a pending TOTP secret and its provisioning URI."""
    secret, provisioning_uri = enrollment.setup_totp(g.account)
    return jsonify({
        'secret': secret,
        'provisioningUri': provisioning_uri,
    }), 200


@mfa_bp.route('/setup/totp/confirm', methods=['POST'])
@login_required
def confirm_totp():
    """Verify the first authenticator code and activate TOTP. Backup codes are shown once."""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'Verification code is required'}), 400

    errors = validate_code_payload(data)
    if errors:
        return jsonify({'error': errors}), 400

    backup_codes = enrollment.confirm_totp(g.account, data['code'])
    auth_session.complete_setup(g.account, factor_verified=True)
    return jsonify({
        'message': 'MFA enabled successfully',
        'backupCodes': backup_codes,
    }), 200


@mfa_bp.route('/setup/email', methods=['POST'])
@login_required
def setup_email():
    enrollment.setup_email(g.account)
    auth_session.complete_setup(g.account, factor_verified=False)
    return jsonify({'message': 'Email MFA enabled successfully'}), 200


# ---------- Management ----------

def _follow_state(state):
    """Drop the session back to setup-pending once no channel is left on a required account."""
    if state is EnrollmentState.SETUP_PENDING:
        auth_session.begin_setup_session(g.account)


@mfa_bp.route('/backup-codes/regenerate', methods=['POST'])
@login_required
@verified_session_required
def regenerate_backup_codes():
    data = request.get_json(silent=True) or {}
    errors = validate_password_confirmation(data)
    if errors:
        return jsonify({'error': errors}), 400

    codes = enrollment.regenerate_backup_codes(g.account, data['password'])
    return jsonify({'backupCodes': codes}), 200


@mfa_bp.route('/totp/enable', methods=['POST'])
@login_required
@verified_session_required
def enable_totp():
    """Add an authenticator app to an account that already has email codes."""
    data = request.get_json(silent=True) or {}
    errors = validate_password_confirmation(data)
    if errors:
        return jsonify({'error': errors}), 400

    secret, provisioning_uri = enrollment.add_totp(g.account, data['password'])
    return jsonify({'secret': secret, 'provisioningUri': provisioning_uri}), 200


@mfa_bp.route('/totp/enable/confirm', methods=['POST'])
@login_required
@verified_session_required
def confirm_enable_totp():
    data = request.get_json(silent=True) or {}
    errors = validate_code_payload(data)
    if errors:
        return jsonify({'error': errors}), 400

    backup_codes = enrollment.confirm_added_totp(g.account, data['code'])
    return jsonify({
        'message': 'Authenticator app MFA enabled',
        'backupCodes': backup_codes,
    }), 200


@mfa_bp.route('/email/enable', methods=['POST'])
@login_required
@verified_session_required
def enable_email():
    data = request.get_json(silent=True) or {}
    errors = validate_password_confirmation(data)
    if errors:
        return jsonify({'error': errors}), 400

    enrollment.add_email(g.account, data['password'])
    return jsonify({'message': 'Email MFA enabled'}), 200


@mfa_bp.route('/totp/disable', methods=['POST'])
@login_required
@verified_session_required
def disable_totp():
    data = request.get_json(silent=True) or {}
    errors = validate_password_confirmation(data)
    if errors:
        return jsonify({'error': errors}), 400

    state = enrollment.disable_totp(g.account, data['password'])
    _follow_state(state)
    return jsonify({'message': 'Authenticator app MFA disabled', 'state': state.value}), 200


@mfa_bp.route('/email/disable', methods=['POST'])
@login_required
@verified_session_required
def disable_email():
    data = request.get_json(silent=True) or {}
    errors = validate_password_confirmation(data)
    if errors:
        return jsonify({'error': errors}), 400

    state = enrollment.disable_email(g.account, data['password'])
    _follow_state(state)
    return jsonify({'message': 'Email MFA disabled', 'state': state.value}), 200
