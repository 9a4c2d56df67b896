"""
Flask development server entry point.
"""
import os
from mfa_gate import create_app

app = create_app()


def _ssl_context(is_production):
    cert_path = os.getenv('SSL_CERT_PATH')
    key_path = os.getenv('SSL_KEY_PATH')
    if cert_path and key_path and os.path.exists(cert_path) and os.path.exists(key_path):
        return cert_path, key_path
    if is_production:
        # Session cookies are Secure-only in production
        raise RuntimeError(
            'SSL certificates are required in production. '
            'Set SSL_CERT_PATH and SSL_KEY_PATH to valid certificate files.'
        )
    return None


if __name__ == '__main__':
    is_production = os.getenv('FLASK_ENV') == 'production'
    app.run(
        host=os.getenv('FLASK_HOST', '127.0.0.1'),
        port=int(os.getenv('FLASK_PORT', 5000)),
        debug=not is_production,
        ssl_context=_ssl_context(is_production),
    )
