"""Server-side Google OAuth (authorization code flow)."""

import logging
from urllib.parse import urlencode, quote

import requests
from flask import Blueprint, request, redirect, current_app
from reado.middleware.auth import issue_token
from reado.services.users import upsert_google_user

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/users/auth')

GOOGLE_AUTH_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_USERINFO_URL = 'https://www.googleapis.com/oauth2/v2/userinfo'


def _login_failed():
    return redirect(f"{current_app.config['FRONTEND_URL']}/login?error=oauth_failed")


def _oauth_configured(*keys):
    return all(current_app.config.get(key) for key in keys)


@bp.route('/google', methods=['GET'])
def google_login():
    """Redirect the browser to Google's consent screen."""
    if not _oauth_configured('GOOGLE_CLIENT_ID', 'GOOGLE_CLIENT_SECRET'):
        logger.warning('Google OAuth is not configured')
        return _login_failed()

    params = {
        'client_id': current_app.config['GOOGLE_CLIENT_ID'],
        'redirect_uri': current_app.config['OAUTH_REDIRECT_URI'],
        'response_type': 'code',
        'scope': 'profile email',
        'access_type': 'offline',
        'prompt': 'consent',
    }
    return redirect(f'{GOOGLE_AUTH_URL}?{urlencode(params)}')


@bp.route('/google/callback', methods=['GET'])
def google_callback():
    """Exchange the code, store the user, hand a session token to the SPA."""
    code = request.args.get('code')
    if request.args.get('error') or not code:
        return _login_failed()
    if not _oauth_configured('GOOGLE_CLIENT_ID', 'GOOGLE_CLIENT_SECRET', 'JWT_SECRET'):
        logger.warning('Google OAuth callback hit without full configuration')
        return _login_failed()

    try:
        token_resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                'code': code,
                'client_id': current_app.config['GOOGLE_CLIENT_ID'],
                'client_secret': current_app.config['GOOGLE_CLIENT_SECRET'],
                'redirect_uri': current_app.config['OAUTH_REDIRECT_URI'],
                'grant_type': 'authorization_code',
            },
            timeout=10,
        )
        token_resp.raise_for_status()
        tokens = token_resp.json()

        info_resp = requests.get(
            GOOGLE_USERINFO_URL,
            headers={'Authorization': f"Bearer {tokens['access_token']}"},
            timeout=10,
        )
        info_resp.raise_for_status()
        info = info_resp.json()

        user = upsert_google_user(
            google_id=info['id'],
            name=info.get('name') or info.get('email', ''),
            email=info.get('email', ''),
            picture=info.get('picture', ''),
            access_token=tokens.get('access_token', ''),
            refresh_token=tokens.get('refresh_token'),
        )
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.warning('Google OAuth callback failed: %s', e)
        return _login_failed()

    token = issue_token(user)
    return redirect(f"{current_app.config['FRONTEND_URL']}/reading?token={quote(token)}")
