"""
Input validation for login and MFA payloads.
"""
from email_validator import validate_email, EmailNotValidError

MAX_PASSWORD_LENGTH = 256
MAX_CODE_LENGTH = 32


def validate_login(data: dict) -> list:
    """Validate login input. Returns list of error strings (empty = valid)."""
    errors = []

    email = data.get('email')
    if not email or not isinstance(email, str):
        errors.append('Email is required')
    else:
        try:
            validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            errors.append('Email is not valid')

    password = data.get('password')
    if not password or not isinstance(password, str):
        errors.append('Password is required')
    elif len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f'Password must be {MAX_PASSWORD_LENGTH} characters or fewer')

    return errors


def validate_code_payload(data: dict, field='code') -> list:
    """Validate a payload carrying a one-time code in ``field``."""
    errors = []
    code = data.get(field)
    if code is None or str(code).strip() == '':
        errors.append(f'{field} is required')
    elif len(str(code)) > MAX_CODE_LENGTH:
        errors.append(f'{field} must be {MAX_CODE_LENGTH} characters or fewer')
    return errors


def validate_challenge_payload(data: dict) -> list:
    errors = []
    token = data.get('challengeToken')
    if not token or not isinstance(token, str):
        errors.append('challengeToken is required')
    return errors


def validate_password_confirmation(data: dict) -> list:
    password = data.get('password')
    if not password or not isinstance(password, str):
        return ['Password is required']
    return []
