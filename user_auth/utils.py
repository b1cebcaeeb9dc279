# user_auth/utils.py
import re
from functools import wraps

from firebase_admin import auth
from flask import abort, current_app, g, request

from tripdraw.models import Identity

GUEST_KEY = "guest"
GUEST_SESSION_HEADER = "X-Guest-Session"
_SESSION_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def verify_firebase_token(id_token):
    """
    Verifies a Firebase ID token.
    Returns the decoded token if valid, None otherwise.
    """
    try:
        return auth.verify_id_token(id_token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
            auth.RevokedIdTokenError, auth.CertificateFetchError) as e:
        current_app.logger.error(f"Error verifying Firebase ID token: {e}")
        return None


def guest_identity(session_key=None):
    """Guests share one ledger per city unless the client sends its own session key."""
    if session_key and _SESSION_KEY_RE.match(session_key):
        return Identity(key=f"{GUEST_KEY}:{session_key}", is_guest=True)
    return Identity(key=GUEST_KEY, is_guest=True)


def resolve_identity():
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return guest_identity(request.headers.get(GUEST_SESSION_HEADER))

    if not auth_header.startswith("Bearer "):
        abort(401, description="Invalid Authorization header format. Expected 'Bearer <token>'.")

    decoded = verify_firebase_token(auth_header.split(" ", 1)[1])
    if not decoded:
        abort(401, description="Invalid or expired token.")
    return Identity(key=decoded['uid'], email=decoded.get('email'))


def identity_required(f):
    """
    Decorator for Flask routes that resolves the caller into g.identity.
    'Authorization: Bearer <id_token>' identifies a user; without it the
    caller is a guest. A malformed or invalid token is rejected with 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.identity = resolve_identity()
        return f(*args, **kwargs)
    return decorated_function
