from flask import request


def json_body():
    """The request's JSON object, or {} for a missing, invalid or non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_blueprints(app):
    from reado.api.auth import bp as auth_bp
    from reado.api.comments import bp as comments_bp
    from reado.api.users import bp as users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(comments_bp)
    app.register_blueprint(users_bp)
