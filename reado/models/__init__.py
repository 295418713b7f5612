from reado.models.user import User  # noqa: F401
from reado.models.bookmark import Bookmark  # noqa: F401
from reado.models.comment import Comment, CommentReaction  # noqa: F401
