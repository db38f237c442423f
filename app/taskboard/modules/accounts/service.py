from __future__ import annotations

from typing import TYPE_CHECKING

from app.taskboard.models import User
from app.taskboard.security import hash_password, verify_password

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class AuthError(Exception):
    """Raised when credentials do not authenticate an account."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason  # "unknown_user", "bad_password" or "inactive"


class UserService:
    """Lookups and account creation shared by the login flow, the admin and seeding."""

    @staticmethod
    def find_by_id(s: "Session", user_id: int) -> User | None:
        return s.get(User, user_id)

    @staticmethod
    def find_by_username(s: "Session", username: str) -> User | None:
        return s.query(User).filter(User.username == username).one_or_none()

    @staticmethod
    def find_all(s: "Session") -> list[User]:
        return s.query(User).order_by(User.username.asc()).all()

    @staticmethod
    def create(
        s: "Session",
        username: str,
        password: str,
        *,
        is_admin: bool = False,
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username,
            password_hash=hash_password(password),
            is_admin=is_admin,
            is_active=is_active,
        )
        s.add(user)
        s.flush()
        return user

    @classmethod
    def authenticate(cls, s: "Session", username: str, password: str) -> User:
        user = cls.find_by_username(s, username)
        if user is None:
            raise AuthError("unknown_user")
        if not verify_password(password, user.password_hash):
            raise AuthError("bad_password")
        if not user.is_active:
            raise AuthError("inactive")
        return user
