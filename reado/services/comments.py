import logging

from sqlalchemy.orm.exc import StaleDataError

from reado.extensions import db
from reado.models.comment import Comment

logger = logging.getLogger(__name__)

MAX_DELETE_ATTEMPTS = 10


class CommentError(Exception):
    """Base for comment failures; carries the HTTP status to answer with."""

    status_code = 400

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class CommentValidationError(CommentError):
    status_code = 400


class CommentNotFound(CommentError):
    status_code = 404

    def __init__(self, comment_id):
        self.comment_id = comment_id
        super().__init__('Comment not found')


class CommentForbidden(CommentError):
    status_code = 403


class CommentConflict(CommentError):
    """The comment kept changing underneath a write."""
    status_code = 409


class ReactionConflict(CommentConflict):
    pass


def optional_int(data, key):
    value = data.get(key)
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise CommentValidationError(f'{key} must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise CommentValidationError(f'{key} must be an integer')


def optional_percent(data):
    value = data.get('percent')
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise CommentValidationError('percent must be a number')
    try:
        percent = float(value)
    except (TypeError, ValueError):
        raise CommentValidationError('percent must be a number')
    if not 0 <= percent <= 100:
        raise CommentValidationError('percent must be between 0 and 100')
    return percent


def get_comment(comment_id, refresh=False):
    comment = db.session.get(Comment, comment_id, populate_existing=refresh)
    if comment is None:
        raise CommentNotFound(comment_id)
    return comment


def list_comments(book_id=None, page=None, user_id=None):
    """Comments matching the given filters, newest first."""
    query = Comment.query
    if book_id:
        query = query.filter_by(book_id=book_id)
    if page is not None:
        query = query.filter_by(page=page)
    if user_id:
        query = query.filter_by(user_id=user_id)
    return query.order_by(Comment.created_at.desc()).all()


def delete_comment(comment_id, user_id):
    """Delete a comment on behalf of its author.

    The DELETE is matched on the comment's version, so a reaction or a
    spoiler verdict landing between the read and the delete makes it
    stale. The ownership check and delete are then repeated from a fresh
    read.
    """
    for attempt in range(1, MAX_DELETE_ATTEMPTS + 1):
        comment = get_comment(comment_id, refresh=True)
        if comment.user_id != user_id:
            raise CommentForbidden('You can only delete your own comments')
        db.session.delete(comment)
        try:
            db.session.commit()
            return
        except StaleDataError:
            db.session.rollback()
            logger.info(
                'Comment %s changed before delete (attempt %d/%d)',
                comment_id, attempt, MAX_DELETE_ATTEMPTS,
            )

    raise CommentConflict('Comment is being updated too often, please retry')
