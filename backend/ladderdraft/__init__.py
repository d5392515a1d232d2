"""
LadderDraft: live snake-draft engine for fantasy football leagues.
"""
import os

from flask import Flask
from flask_socketio import SocketIO
from flask_cors import CORS
import firebase_admin
from firebase_admin import credentials, initialize_app, firestore

from .config import get_config
from .utils.logger import setup_logger, get_logger

socketio = SocketIO()

_db = None


def _init_firebase(config):
    """Initialize the default Firebase app once per process."""
    if firebase_admin._apps:
        return

    cred_path = config.GOOGLE_APPLICATION_CREDENTIALS
    options = {'projectId': config.FIREBASE_PROJECT_ID}
    if cred_path:
        initialize_app(credentials.Certificate(cred_path), options)
    elif os.environ.get('FIREBASE_PRIVATE_KEY'):
        initialize_app(credentials.Certificate(config.get_firebase_config()), options)
    else:
        initialize_app(options=options)  # Emulator doesn't require credentials


def get_db():
    """Get the Firestore client, initializing Firebase on first use."""
    global _db
    if _db is None:
        config = get_config()
        _init_firebase(config)
        _db = firestore.client()
    return _db


def _build_backends(app):
    from .models.audit_model import InMemoryAuditLog
    from .models.draft_store import InMemoryDraftStore
    from .services.auth_service import StaticIdentityProvider
    from .services.roster_service import InMemoryRosterStore

    if app.config['STORE_BACKEND'] == 'memory':
        return InMemoryDraftStore(), InMemoryRosterStore(), StaticIdentityProvider(), InMemoryAuditLog()

    from .models.firestore_store import FirestoreAuditLog, FirestoreDraftStore
    from .services.auth_service import FirestoreIdentityProvider
    from .services.roster_service import FirestoreRosterStore

    db = get_db()
    return FirestoreDraftStore(db), FirestoreRosterStore(db), FirestoreIdentityProvider(db), FirestoreAuditLog(db)


def create_app(config_name=None, **overrides):
    """
    Application factory.

    Args:
        config_name: Key of config_map; defaults to FLASK_ENV
        overrides: Replace any of the engine backends: store, roster,
            identity, audit_log, feed, strategy, clock
    """
    from .models.draft_model import DraftSettings
    from .services.draft_service import DraftService
    from .services.notification_service import SocketIONotificationFeed
    from .services.rate_limiter import RateLimiter

    config = get_config(config_name)
    if hasattr(config, 'validate_production_config'):
        config.validate_production_config()

    app = Flask(__name__)
    app.config.from_object(config)
    setup_logger(app.config['LOG_LEVEL'])
    logger = get_logger('app')

    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})
    socketio.init_app(
        app,
        cors_allowed_origins=app.config['SOCKETIO_CORS_ALLOWED_ORIGINS'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE']
    )

    if {'store', 'roster', 'identity', 'audit_log'} <= overrides.keys():
        store, roster, identity, audit_log = (overrides['store'], overrides['roster'],
                                              overrides['identity'], overrides['audit_log'])
    else:
        store, roster, identity, audit_log = _build_backends(app)
        store = overrides.get('store', store)
        roster = overrides.get('roster', roster)
        identity = overrides.get('identity', identity)
        audit_log = overrides.get('audit_log', audit_log)

    clock_kwargs = {'clock': overrides['clock']} if 'clock' in overrides else {}
    service = DraftService(
        store=store,
        roster=roster,
        identity=identity,
        audit_log=audit_log,
        feed=overrides.get('feed') or SocketIONotificationFeed(socketio),
        rate_limiter=RateLimiter.from_config(audit_log, app.config, **clock_kwargs),
        strategy=overrides.get('strategy'),
        default_settings=DraftSettings(
            timer_seconds=app.config['DEFAULT_TIMER_SECONDS'],
            auto_pick_enabled=app.config['DEFAULT_AUTO_PICK_ENABLED'],
            rounds=app.config['DEFAULT_ROUNDS']
        ),
        **clock_kwargs
    )
    app.extensions['draft_service'] = service

    from .routes import init_routes
    init_routes(app)

    from .socket_events import init_socket_events
    init_socket_events(socketio)

    logger.info(f"LadderDraft started with {app.config['STORE_BACKEND']} backend")
    return app
