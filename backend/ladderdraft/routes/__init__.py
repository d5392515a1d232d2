"""
Route blueprints initialization.
"""
from .drafts import drafts_bp

__all__ = ['drafts_bp', 'init_routes']


def init_routes(app):
    """Register all blueprints on ``app``."""
    app.register_blueprint(drafts_bp, url_prefix='/api/drafts')

    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'ladderdraft'}
