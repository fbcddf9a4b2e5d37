import logging
from typing import Callable, Dict, Optional

from lms_app.config import TABLE_USERS
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Role
from lms_app.utils.errors import AuthError, DataError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _error_message(exc: Exception, fallback: str) -> str:
    message = getattr(exc, 'message', None) or str(exc)
    return message or fallback


class AuthManager:
    """Email/password authentication against the backend's auth service.

    Credentials never touch the portal's own tables; the `users` row is only
    the profile (name, role, class) linked to the auth user by `auth_id`.
    """

    def __init__(self, data_client: Optional[DataClient] = None):
        self.data = data_client or get_data_client()

    def load_profile(self, auth_id: str) -> Optional[Dict]:
        """Get the profile row for an auth user"""
        try:
            return self.data.select_one(TABLE_USERS, {'auth_id': auth_id})
        except DataError as e:
            logger.error("Could not load profile for auth user %s: %s", auth_id, e)
            return None

    def sign_in(self, email: str, password: str) -> Dict:
        """Authenticate and return the profile row"""
        email = (email or '').strip()
        if not email or not password:
            raise AuthError("Please enter your email and password")

        try:
            response = self.data.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise AuthError(_error_message(e, "Invalid email or password"), cause=e) from e

        user = getattr(response, 'user', None)
        if user is None:
            raise AuthError("Invalid email or password")

        profile = self.load_profile(user.id)
        if not profile:
            raise AuthError("Your account has no profile yet. Please contact an administrator.")
        return profile

    def sign_up(self, email: str, password: str, nama: str,
                role: str = Role.SISWA.value, kelas_id: Optional[int] = None) -> None:
        """Create the auth user and then the profile row"""
        email = (email or '').strip()
        if not email:
            raise AuthError("Only email sign-up is supported")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        role = Role.parse(role).value
        nama = (nama or '').strip() or 'New User'

        try:
            response = self.data.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"nama": nama, "role": role}}
            })
        except Exception as e:
            raise AuthError(_error_message(e, "Sign-up failed"), cause=e) from e

        user = getattr(response, 'user', None)
        if user is None:
            return

        profile = {'auth_id': user.id, 'email': email, 'nama': nama, 'role': role}
        if kelas_id is not None:
            profile['kelas_id'] = kelas_id
        try:
            self.data.insert(TABLE_USERS, profile)
        except DataError as e:
            logger.error("User %s created in auth, but profile creation failed: %s", email, e)
            raise AuthError(
                "Account created, but profile could not be saved. Please contact support.",
                cause=e
            ) from e

    def sign_out(self) -> None:
        try:
            self.data.auth.sign_out()
        except Exception as e:
            raise AuthError(_error_message(e, "Sign-out failed"), cause=e) from e

    def current_auth_user_id(self) -> Optional[str]:
        """Auth user id of a persisted session, if any"""
        try:
            session = self.data.auth.get_session()
        except Exception as e:
            logger.warning("Error fetching session: %s", e)
            return None
        user = getattr(session, 'user', None) if session else None
        return user.id if user else None

    def on_auth_state_change(self, callback: Callable[[str, Optional[str]], None]):
        """Subscribe to auth events; callback receives (event, auth_user_id or None)"""
        def _listener(event, session):
            user = getattr(session, 'user', None) if session else None
            callback(str(getattr(event, 'value', event)), user.id if user else None)

        return self.data.auth.on_auth_state_change(_listener)
