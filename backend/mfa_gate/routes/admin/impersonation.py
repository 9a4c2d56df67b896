"""Admin impersonation routes."""
from flask import request, jsonify
from mfa_gate.routes.auth import session_user_payload
from mfa_gate.services import session as auth_session
from mfa_gate.utils.auth import login_required
from . import admin_bp, admin_required


@admin_bp.route('/impersonate', methods=['POST'])
@login_required
def impersonate():
    """Act as a client account. Role and MFA checks happen in the session service so denials get audited."""
    data = request.get_json(silent=True) or {}
    target_id = data.get('userId')
    if not isinstance(target_id, int) or isinstance(target_id, bool):
        return jsonify({'error': 'userId is required'}), 400

    ctx, _admin, _target = auth_session.impersonate(target_id)
    return jsonify(session_user_payload(ctx)), 200


@admin_bp.route('/stop-impersonate', methods=['POST'])
@login_required
@admin_required
def stop_impersonate():
    ctx = auth_session.stop_impersonation()
    return jsonify(session_user_payload(ctx)), 200
