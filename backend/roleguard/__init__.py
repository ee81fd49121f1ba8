from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return None
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['AUTHZ_STRICT_CATALOG'] = _env_flag('AUTHZ_STRICT_CATALOG')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    from .config.logging import setup_logger
    setup_logger(app.config['LOG_LEVEL'])

    # Unknown permission names raise in development and tests, deny-and-log in production
    from .services.evaluator import set_strict_catalog
    strict = app.config.get('AUTHZ_STRICT_CATALOG')
    if strict is None:
        strict = bool(app.config.get('DEBUG') or app.config.get('TESTING'))
    set_strict_catalog(strict)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.roles import roles_bp
    from .routes.assignments import users_bp
    app.register_blueprint(roles_bp, url_prefix='/roles')
    app.register_blueprint(users_bp, url_prefix='/users')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import RoleError

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, RoleError):
            if e.status_code >= 500:
                app.logger.error('Role engine error: %s', e.detail)
            return {
                'error': {
                    'status': e.status_code,
                    'title': e.title,
                    'detail': e.detail,
                }
            }, e.status_code
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
