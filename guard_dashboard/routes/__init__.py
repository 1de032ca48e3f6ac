"""
Routes package - Blueprint-based routes.
"""

from flask import Flask


def register_blueprints(app: Flask):
    """
    Register route blueprints.

    This is called from app.py to register all modular routes.
    """
    from guard_dashboard.routes import api
    app.register_blueprint(api.bp, url_prefix='/api')
