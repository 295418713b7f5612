from datetime import datetime, timezone

from reado.extensions import db
from reado.models.user import User


def upsert_google_user(google_id, name, email, picture, access_token, refresh_token=None):
    """Create the user for a Google identity, or refresh the stored profile."""
    now = datetime.now(timezone.utc)
    user = User.query.filter_by(google_id=google_id).first()
    if user:
        user.name = name
        user.email = email
        user.picture = picture
        user.access_token = access_token
        user.last_login = now
        if refresh_token:
            user.refresh_token = refresh_token
    else:
        user = User(
            google_id=google_id,
            name=name,
            email=email,
            picture=picture,
            access_token=access_token,
            refresh_token=refresh_token,
            last_login=now,
        )
        db.session.add(user)
    db.session.commit()
    return user
