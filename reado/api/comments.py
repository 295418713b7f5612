from flask import Blueprint, request, jsonify, current_app
from reado.api import json_body
from reado.models.comment import LIKE, DISLIKE
from reado.services import comments as comment_service
from reado.services.comments import CommentError
from reado.services.reactions import react, vote_status

bp = Blueprint('comments', __name__, url_prefix='/comments')


def _author_to_dict(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'name': user.name,
        'picture': user.picture,
        'email': user.email,
    }


def _comment_to_dict(comment):
    """Serialize a Comment with its author populated."""
    return {
        'id': comment.id,
        'bookId': comment.book_id,
        'userId': _author_to_dict(comment.author),
        'page': comment.page,
        'percent': comment.percent,
        'text': comment.text,
        'likes': comment.likes,
        'dislikes': comment.dislikes,
        'likedBy': comment.liked_by,
        'dislikedBy': comment.disliked_by,
        'createdAt': comment.created_at.isoformat() if comment.created_at else None,
        'nsfw': comment.nsfw,
        'spoiler': {
            'isSpoiler': comment.spoiler_is_spoiler,
            'source': comment.spoiler_source,
            'confidence': comment.spoiler_confidence,
        },
    }


@bp.errorhandler(CommentError)
def _handle_comment_error(e):
    return jsonify({'error': e.message}), e.status_code


@bp.route('', methods=['POST'])
def create_comment():
    """Post a comment.

    NSFW screening happens before the response; spoiler classification
    runs in the background and updates the stored comment later.
    """
    data = request.get_json(silent=True)
    moderation = current_app.extensions['moderation']
    comment = moderation.submit(data)
    return jsonify(_comment_to_dict(comment)), 201


@bp.route('', methods=['GET'])
def list_comments():
    """List comments, newest first.

    Query params:
        bookId, page, userId (all optional)
    """
    page = request.args.get('page')
    if page:
        try:
            page = int(page)
        except ValueError:
            return jsonify({'error': 'page must be an integer'}), 400
    else:
        page = None

    comments = comment_service.list_comments(
        book_id=request.args.get('bookId'),
        page=page,
        user_id=request.args.get('userId'),
    )
    return jsonify([_comment_to_dict(c) for c in comments])


@bp.route('/<comment_id>', methods=['GET'])
def get_comment(comment_id):
    comment = comment_service.get_comment(comment_id)
    return jsonify(_comment_to_dict(comment))


def _react(comment_id, polarity):
    user_id = json_body().get('userId')
    if not user_id or not isinstance(user_id, str):
        return jsonify({'error': 'User ID is required'}), 400

    comment = react(comment_id, user_id, polarity)
    return jsonify(_comment_to_dict(comment))


@bp.route('/<comment_id>/like', methods=['PATCH'])
def like_comment(comment_id):
    """Toggle a like; a previous dislike by the same user is removed."""
    return _react(comment_id, LIKE)


@bp.route('/<comment_id>/dislike', methods=['PATCH'])
def dislike_comment(comment_id):
    """Toggle a dislike; a previous like by the same user is removed."""
    return _react(comment_id, DISLIKE)


@bp.route('/<comment_id>/vote-status', methods=['GET'])
def get_vote_status(comment_id):
    user_id = request.args.get('userId')
    if not user_id:
        return jsonify({'error': 'User ID is required'}), 400

    return jsonify(vote_status(comment_id, user_id))


@bp.route('/<comment_id>', methods=['DELETE'])
def delete_comment(comment_id):
    """Delete a comment. Only its author may do this."""
    user_id = json_body().get('userId')
    if not user_id or not isinstance(user_id, str):
        return jsonify({'error': 'User ID is required'}), 400

    comment_service.delete_comment(comment_id, user_id)
    return jsonify({'message': 'Comment deleted successfully'})
