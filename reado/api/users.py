from flask import Blueprint, jsonify, g
from sqlalchemy import func
from reado.api import json_body
from reado.extensions import db
from reado.middleware.auth import require_auth
from reado.models.bookmark import Bookmark
from reado.models.user import User
from reado.services.users import upsert_google_user

bp = Blueprint('users', __name__, url_prefix='/users')


def _user_to_dict(user, include_bookmarks=False):
    """Serialize a User without its OAuth tokens."""
    data = {
        'id': user.id,
        'googleId': user.google_id,
        'name': user.name,
        'email': user.email,
        'picture': user.picture,
        'createdAt': user.created_at.isoformat() if user.created_at else None,
        'lastLogin': user.last_login.isoformat() if user.last_login else None,
    }
    if include_bookmarks:
        data['bookmarks'] = [_bookmark_to_dict(b) for b in user.bookmarks]
    return data


def _bookmark_to_dict(bookmark):
    return {
        'bookId': bookmark.book_id,
        'page': bookmark.page,
        'color': bookmark.color,
    }


@bp.route('/auth/google', methods=['POST'])
def google_sign_in():
    """Create or update a user from a client-side Google sign-in."""
    data = json_body()
    required = ['googleId', 'name', 'email', 'picture', 'accessToken']
    if any(not data.get(field) or not isinstance(data[field], str) for field in required):
        return jsonify({'error': 'Missing required fields'}), 400

    user = upsert_google_user(
        google_id=data['googleId'],
        name=data['name'],
        email=data['email'],
        picture=data['picture'],
        access_token=data['accessToken'],
    )
    return jsonify({
        'success': True,
        'user': {
            'id': user.id,
            'googleId': user.google_id,
            'name': user.name,
            'email': user.email,
            'picture': user.picture,
        },
    })


@bp.route('/me', methods=['GET'])
@require_auth
def get_me():
    return jsonify(_user_to_dict(g.user, include_bookmarks=True))


@bp.route('/batch', methods=['POST'])
def get_users_batch():
    """Look up several users at once (used to populate comment authors)."""
    data = json_body()
    user_ids = data.get('userIds')
    if not isinstance(user_ids, list) or not all(isinstance(i, str) for i in user_ids):
        return jsonify({'error': 'userIds array is required'}), 400

    users = User.query.filter(User.id.in_(user_ids)).all() if user_ids else []
    return jsonify([
        {'id': u.id, 'name': u.name, 'picture': u.picture, 'email': u.email}
        for u in users
    ])


@bp.route('/<user_id>', methods=['GET'])
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(_user_to_dict(user, include_bookmarks=True))


@bp.route('/<user_id>/bookmarks', methods=['GET'])
def list_bookmarks(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404
    return jsonify([_bookmark_to_dict(b) for b in user.bookmarks])


@bp.route('/<user_id>/bookmarks', methods=['POST'])
def add_bookmark(user_id):
    """Add a bookmark. An existing one on the same book page is replaced
    and the new one goes to the end of the list."""
    data = json_body()
    book_id = data.get('bookId')
    page = data.get('page')
    color = data.get('color')
    valid_page = isinstance(page, int) and not isinstance(page, bool)
    if not isinstance(book_id, str) or not book_id or not valid_page \
            or not isinstance(color, str) or not color:
        return jsonify({'error': 'bookId, page, and color are required'}), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    existing = Bookmark.query.filter_by(user_id=user_id, book_id=book_id, page=page).first()
    if existing:
        user.bookmarks.remove(existing)
        # Flush the delete before the insert reuses (user, book, page)
        db.session.flush()

    last_position = (
        db.session.query(func.max(Bookmark.position))
        .filter(Bookmark.user_id == user_id)
        .scalar()
    )
    user.bookmarks.append(Bookmark(
        book_id=book_id,
        page=page,
        color=color,
        position=(last_position or 0) + 1,
    ))
    db.session.commit()

    return jsonify([_bookmark_to_dict(b) for b in user.bookmarks])


@bp.route('/<user_id>/bookmarks', methods=['DELETE'])
def delete_bookmark(user_id):
    """Remove the bookmark on a book page."""
    data = json_body()
    book_id = data.get('bookId')
    page = data.get('page')
    valid_page = isinstance(page, int) and not isinstance(page, bool)
    if not isinstance(book_id, str) or not book_id or not valid_page:
        return jsonify({'error': 'bookId and page are required'}), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'error': 'User not found'}), 404

    bookmark = Bookmark.query.filter_by(user_id=user_id, book_id=book_id, page=page).first()
    if not bookmark:
        return jsonify({'error': 'Bookmark not found'}), 404

    user.bookmarks.remove(bookmark)
    db.session.commit()

    return jsonify([_bookmark_to_dict(b) for b in user.bookmarks])
