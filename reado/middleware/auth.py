from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import request, jsonify, g, current_app
from reado.extensions import db
from reado.models.user import User


def issue_token(user):
    """Sign the session token handed to the SPA after Google sign-in."""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user.id,
        'name': user.name,
        'email': user.email,
        'picture': user.picture,
        'iat': now,
        'exp': now + timedelta(days=current_app.config['JWT_TTL_DAYS']),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm='HS256')


def _decode_token(token):
    return jwt.decode(
        token,
        current_app.config['JWT_SECRET'],
        algorithms=['HS256'],
    )


def require_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None
        auth_header = request.headers.get('Authorization', '')

        if auth_header.startswith('Bearer '):
            token = auth_header[7:]

        if not token:
            return jsonify({'error': 'Missing authorization token'}), 401

        if not current_app.config['JWT_SECRET']:
            current_app.logger.error('JWT_SECRET is not configured')
            return jsonify({'error': 'Authentication is not configured'}), 401

        try:
            payload = _decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        user_id = payload.get('sub')
        if not user_id:
            return jsonify({'error': 'Invalid token payload'}), 401

        user = db.session.get(User, user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 401

        g.user_id = user_id
        g.user = user
        g.jwt_payload = payload

        return f(*args, **kwargs)
    return decorated
