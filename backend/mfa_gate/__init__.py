import os
from datetime import timedelta
from flask import Flask, request, redirect, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from dotenv import load_dotenv

load_dotenv()

db = SQLAlchemy()
migrate = Migrate()

DEFAULT_RATE_LIMITS = {
    # limiter name: (max_attempts, window_seconds)
    'login': (5, 60),
    'login_failures': (10, 900),
    'mfa_verify': (5, 600),
    'otp_send': (3, 900),
}

REQUIRED_SETTINGS = ('SECRET_KEY', 'JWT_SECRET_KEY', 'SQLALCHEMY_DATABASE_URI')


def _configure(app, test_config, is_production):
    app.config.update(
        SECRET_KEY=os.getenv('SECRET_KEY'),
        JWT_SECRET_KEY=os.getenv('JWT_SECRET_KEY'),
        SQLALCHEMY_DATABASE_URI=os.getenv('DATABASE_URL'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SQLALCHEMY_ENGINE_OPTIONS={'pool_pre_ping': True, 'pool_recycle': 300},
        MAX_CONTENT_LENGTH=64 * 1024,

        # Signed cookie session, 30 minutes of inactivity
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=is_production,
        SESSION_COOKIE_SAMESITE='Strict' if is_production else 'Lax',
        PERMANENT_SESSION_LIFETIME=timedelta(minutes=30),
        SESSION_REFRESH_EACH_REQUEST=True,

        MFA_ISSUER_NAME=os.getenv('MFA_ISSUER_NAME', 'Secure2Send'),
        CHALLENGE_TOKEN_TTL=int(os.getenv('CHALLENGE_TOKEN_TTL', 600)),
        CODE_HASH_METHOD=os.getenv('CODE_HASH_METHOD', 'scrypt'),
        RATE_LIMITS=dict(DEFAULT_RATE_LIMITS),
        AUDIT_LOG_FILE=os.getenv('AUDIT_LOG_FILE', 'logs/audit.log'),
    )
    if test_config:
        app.config.update(test_config)

    missing = [key for key in REQUIRED_SETTINGS if not app.config.get(key)]
    if missing:
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    database_url = app.config['SQLALCHEMY_DATABASE_URI']
    if is_production and not database_url.startswith('postgresql'):
        raise RuntimeError('PostgreSQL is required in production (DATABASE_URL must start with postgresql://)')
    if database_url.startswith('sqlite'):
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {}


def _cors_origins(is_production):
    configured = [o.strip() for o in os.getenv('ALLOWED_ORIGINS', '').split(',') if o.strip()]
    if configured:
        return configured
    if is_production:
        raise RuntimeError('ALLOWED_ORIGINS environment variable is required in production')
    return ['http://localhost:*', 'http://127.0.0.1:*']


def _register_request_hooks(app, is_production):
    if is_production:
        @app.before_request
        def enforce_https():
            if not request.is_secure and request.headers.get('X-Forwarded-Proto', 'http') != 'https':
                return redirect(request.url.replace('http://', 'https://', 1), code=301)

    @app.before_request
    def require_json_body():
        # Cross-site form posts cannot set this content type
        if request.method in ('POST', 'PUT') and 'application/json' not in (request.content_type or ''):
            return jsonify({'error': 'Content-Type must be application/json'}), 415

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers['Cache-Control'] = 'no-store'
        response.headers['Referrer-Policy'] = 'no-referrer'
        if is_production or request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response


def _register_cli(app):
    @app.cli.command('cleanup-revoked-tokens')
    def cleanup_revoked_tokens():
        """Remove revoked challenge tokens that have expired anyway."""
        from mfa_gate.models import RevokedToken
        print(f'Removed {RevokedToken.cleanup_expired()} expired revoked token(s).')

    @app.cli.command('cleanup-rate-limits')
    def cleanup_rate_limits():
        """Remove attempt rows older than the longest limiter window."""
        from mfa_gate.models import RateLimitEntry
        longest = max(window for _, window in app.config['RATE_LIMITS'].values())
        print(f'Removed {RateLimitEntry.cleanup_older_than(longest)} rate limit entry/entries.')


def create_app(test_config=None):
    app = Flask(__name__)
    is_production = os.getenv('FLASK_ENV') == 'production'

    _configure(app, test_config, is_production)

    db.init_app(app)
    migrate.init_app(app, db)

    origins = _cors_origins(is_production)
    CORS(app, supports_credentials=True, resources={
        path: {'origins': origins}
        for path in (r'/login*', r'/logout', r'/auth/*', r'/mfa/*', r'/admin/*')
    })

    _register_request_hooks(app, is_production)

    from mfa_gate.errors import AuthError

    @app.errorhandler(AuthError)
    def handle_auth_error(error):
        return jsonify(error.to_dict()), error.status_code

    from mfa_gate.utils.audit_logger import setup_audit_logging
    setup_audit_logging(app)

    from mfa_gate.routes.auth import auth_bp
    from mfa_gate.routes.mfa import mfa_bp
    from mfa_gate.routes.admin import admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(mfa_bp, url_prefix='/mfa')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    _register_cli(app)
    return app
