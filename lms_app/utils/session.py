import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from lms_app.database.models import Role, UserProfile
from lms_app.utils.errors import AuthError
from lms_app.utils.logging_config import get_audit_logger

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[UserProfile]], None]


class AttemptRegistry:
    """Exam attempts held open by this session, keyed by (student_id, exam_id)"""

    PENDING = object()

    def __init__(self):
        self._lock = threading.Lock()
        self._claims: Dict[Tuple[int, int], object] = {}

    def claim(self, student_id: int, exam_id: int) -> bool:
        """Reserve the exam for this session; False if already held"""
        with self._lock:
            key = (student_id, exam_id)
            if key in self._claims:
                return False
            self._claims[key] = self.PENDING
            return True

    def bind(self, student_id: int, exam_id: int, attempt_id: int):
        with self._lock:
            self._claims[(student_id, exam_id)] = attempt_id

    def release(self, student_id: int, exam_id: int):
        with self._lock:
            self._claims.pop((student_id, exam_id), None)

    def active_attempt(self, student_id: int, exam_id: int) -> Optional[int]:
        with self._lock:
            value = self._claims.get((student_id, exam_id))
            return None if value is None or value is self.PENDING else value

    def is_held(self, student_id: int, exam_id: int) -> bool:
        with self._lock:
            return (student_id, exam_id) in self._claims

    def clear(self):
        with self._lock:
            self._claims.clear()


class SessionManager:
    """Holds the signed-in identity and tells subscribers when it changes"""

    def __init__(self, auth_manager=None):
        self._auth_manager = auth_manager
        self._lock = threading.RLock()
        self._listeners: List[IdentityListener] = []
        self._auth_subscription = None
        self.current_user: Optional[UserProfile] = None
        self.login_time: Optional[datetime] = None
        self.attempts = AttemptRegistry()
        self.audit = get_audit_logger()

    @property
    def auth_manager(self):
        if self._auth_manager is None:
            from lms_app.utils.auth import AuthManager
            self._auth_manager = AuthManager()
        return self._auth_manager

    # ---- subscriptions -------------------------------------------------------

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, identity: Optional[UserProfile]):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(identity)
            except Exception:
                logger.exception("Identity listener %r failed", listener)

    def _set_identity(self, identity: Optional[UserProfile]):
        with self._lock:
            previous = self.current_user
            if previous == identity:
                return
            self.current_user = identity
            self.login_time = datetime.now() if identity else None
            if identity is None:
                self.attempts.clear()
        self._notify(identity)

    # ---- lifecycle -----------------------------------------------------------

    def login(self, email: str, password: str) -> UserProfile:
        """Sign in and populate the identity. Raises AuthError."""
        try:
            row = self.auth_manager.sign_in(email, password)
        except AuthError as e:
            self.audit.log_login(email, None, False, str(e))
            raise
        identity = UserProfile.from_row(row)
        self._set_identity(identity)
        self.audit.log_login(email, identity.id, True)
        logger.info("Session created for %s (%s)", identity.email, identity.role.value)
        return identity

    def sign_up(self, email: str, password: str, nama: str,
                role: str = Role.SISWA.value, kelas_id: Optional[int] = None) -> None:
        try:
            self.auth_manager.sign_up(email, password, nama, role, kelas_id)
        except AuthError as e:
            self.audit.log_sign_up(email, role, False, str(e))
            raise
        self.audit.log_sign_up(email, role, True)

    def logout(self) -> None:
        """Sign out remotely and clear the identity, even if the remote call fails"""
        identity = self.current_user
        try:
            self.auth_manager.sign_out()
        finally:
            self._set_identity(None)
            if identity:
                self.audit.log_logout(identity.id, identity.email)

    def restore(self) -> Optional[UserProfile]:
        """Resolve a persisted auth session into an identity at startup"""
        auth_id = self.auth_manager.current_auth_user_id()
        return self._resolve(auth_id)

    def _resolve(self, auth_id: Optional[str]) -> Optional[UserProfile]:
        if not auth_id:
            self._set_identity(None)
            return None
        current = self.current_user
        if current and current.auth_id == auth_id:
            return current
        row = self.auth_manager.load_profile(auth_id)
        identity = UserProfile.from_row(row) if row else None
        self._set_identity(identity)
        return identity

    def bind_auth_events(self):
        """Follow the auth service's state changes (token refresh, remote sign-out)"""
        if self._auth_subscription is not None:
            return

        def on_change(event: str, auth_id: Optional[str]):
            logger.debug("Auth event %s", event)
            if event == 'SIGNED_OUT':
                self._set_identity(None)
            elif auth_id:
                self._resolve(auth_id)

        try:
            self._auth_subscription = self.auth_manager.on_auth_state_change(on_change)
        except Exception as e:
            logger.warning("Could not subscribe to auth events: %s", e)

    def close(self):
        subscription = self._auth_subscription
        self._auth_subscription = None
        if subscription is not None:
            unsubscribe = getattr(subscription, 'unsubscribe', None)
            if unsubscribe:
                unsubscribe()

    # ---- queries -------------------------------------------------------------

    def get_current_user(self) -> Optional[UserProfile]:
        return self.current_user

    def get_user_role(self) -> Optional[Role]:
        user = self.current_user
        return user.role if user else None

    def is_admin(self) -> bool:
        return self.get_user_role() == Role.ADMIN

    def is_teacher(self) -> bool:
        return self.get_user_role() == Role.GURU

    def is_student(self) -> bool:
        return self.get_user_role() == Role.SISWA
