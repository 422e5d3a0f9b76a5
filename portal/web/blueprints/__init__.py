"""Flask blueprints for the instructor portal."""

from portal.web.blueprints.auth import auth_bp
from portal.web.blueprints.classes import classes_bp
from portal.web.blueprints.gradebook import gradebook_bp
from portal.web.blueprints.quizzes import quizzes_bp


def register_blueprints(app):
    """Register all blueprint modules on the Flask app."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(classes_bp)
    app.register_blueprint(gradebook_bp)
    app.register_blueprint(quizzes_bp)
