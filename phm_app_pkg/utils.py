# phm_app_pkg/utils.py
import jwt
import datetime
import uuid # For generating JTI
from functools import wraps
from flask import request, jsonify, current_app, g
from . import db
from .models import User, TokenBlacklist

# --- JWT Helper Functions ---
def create_access_token(user_id, user_permissions):
    """Creates a new JWT access token with a JTI claim."""
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        'exp': now + datetime.timedelta(minutes=current_app.config.get('JWT_EXPIRATION_MINUTES', 30)),
        'iat': now,
        'sub': str(user_id), # User ID (subject)
        'jti': str(uuid.uuid4()), # JWT ID, used for revocation on logout
        'permissions': user_permissions # List of permission strings
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'], algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256'))

def decode_access_token(token):
    """
    Decodes a JWT access token.
    Returns the payload if successful, or an error string if decoding fails.
    """
    key_to_use = current_app.config['JWT_SECRET_KEY']
    algo = current_app.config.get('JWT_ALGORITHM', 'HS256')
    try:
        payload = jwt.decode(token, key_to_use, algorithms=[algo])
    except jwt.ExpiredSignatureError:
        current_app.logger.info("Token decode failed: ExpiredSignatureError")
        return "Token has expired. Please log in again."
    except jwt.InvalidSignatureError:
        current_app.logger.warning("Token decode failed: InvalidSignatureError (Wrong secret key or tampered token)")
        return "Invalid token signature. Please log in again."
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Token decode failed: {e}")
        return "Invalid token. Please log in again."

    if TokenBlacklist.query.filter_by(jti=payload.get('jti')).first():
        current_app.logger.info(f"Attempt to use blacklisted token (jti: {payload.get('jti')})")
        return "Token has been revoked (logged out)."
    return payload

# --- Current User Utility & RBAC Decorator ---
def get_current_user_from_token():
    auth_header = request.headers.get('Authorization')
    token = None
    if auth_header and auth_header.startswith('Bearer '):
        token = auth_header.split(" ")[1]

    if not token:
        g.authentication_error = "Token is missing!"
        return None

    payload = decode_access_token(token) # This also checks the blacklist
    if isinstance(payload, str): # Error message returned
        g.authentication_error = payload
        return None

    user_id_str = payload.get('sub')
    if not user_id_str:
        g.authentication_error = "Invalid token payload (subject missing)!"
        return None

    try:
        user_id = int(user_id_str)
    except ValueError:
        g.authentication_error = "Invalid user ID format in token."
        return None

    user = db.session.get(User, user_id)
    if not user:
        g.authentication_error = "User from token not found in database."
        return None
    if not user.is_active:
        g.authentication_error = "User account is inactive."
        return None

    g.token_permissions = payload.get('permissions', [])
    g.current_token_jti = payload.get('jti') # Stored for logout
    g.current_token_exp = payload.get('exp')
    return user

def permission_required(required_permission):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            current_user = get_current_user_from_token() # This sets g.authentication_error on failure

            if not current_user:
                error_message = getattr(g, 'authentication_error', "Authentication required.")
                return jsonify({"message": error_message}), 401

            g.current_user = current_user # Make user object available via g

            user_permissions = getattr(g, 'token_permissions', []) # Permissions from the token

            if required_permission not in user_permissions:
                return jsonify({"message": f"Permission '{required_permission}' required."}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator

# --- Parsing helpers ---
def parse_iso_date(value):
    """Parse a YYYY-MM-DD string, optionally followed by a `T` time part. Returns None on failure."""
    if not value or not isinstance(value, str):
        return None
    date_part, separator, time_part = value.partition('T')
    try:
        parsed = datetime.date.fromisoformat(date_part)
        if separator:
            datetime.time.fromisoformat(time_part.removesuffix('Z'))
    except ValueError:
        return None
    return parsed

def parse_int(value, default=None):
    """Parse an integer from a query/JSON value; booleans and fractions are not integers."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default
