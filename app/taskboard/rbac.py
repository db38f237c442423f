from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for
from sqlalchemy.orm import Session

from app.taskboard.db import db_session
from app.taskboard.models import GroupPermission, GroupUser, Permission, User, UserPermission


def has_perm(s: Session, user: User | None, codename: str) -> bool:
    """
    Resolve a permission the way Django's ``user.has_perm`` does:
    admin flag, then a direct grant, then a grant through any group the user is in.
    """
    if not user or not user.is_active:
        return False
    if user.is_admin:
        return True

    direct = (
        s.query(Permission.id)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .filter(UserPermission.user_id == user.id, Permission.codename == codename)
    )
    if s.query(direct.exists()).scalar():
        return True

    group_ids = [gid for (gid,) in s.query(GroupUser.group_id).filter(GroupUser.user_id == user.id).all()]
    if not group_ids:
        return False

    via_group = (
        s.query(Permission.id)
        .join(GroupPermission, GroupPermission.permission_id == Permission.id)
        .filter(GroupPermission.group_id.in_(group_ids), Permission.codename == codename)
    )
    return bool(s.query(via_group.exists()).scalar())


def get_all_permissions(s: Session, user: User | None) -> set[str]:
    """Effective permission codenames (direct + group). Admins get every codename."""
    if not user or not user.is_active:
        return set()
    if user.is_admin:
        return {codename for (codename,) in s.query(Permission.codename).all()}

    direct = (
        s.query(Permission.codename)
        .join(UserPermission, UserPermission.permission_id == Permission.id)
        .filter(UserPermission.user_id == user.id)
    )
    via_group = (
        s.query(Permission.codename)
        .join(GroupPermission, GroupPermission.permission_id == Permission.id)
        .join(GroupUser, GroupUser.group_id == GroupPermission.group_id)
        .filter(GroupUser.user_id == user.id)
    )
    return {codename for (codename,) in direct.union(via_group).all()}


def current_user_has_perm(codename: str) -> bool:
    """Request-cached check for the logged-in user (used by templates)."""
    user: User | None = getattr(g, "current_user", None)
    if not user:
        return False
    cache: dict[str, bool] = g.setdefault("_perm_cache", {})
    if codename not in cache:
        cache[codename] = has_perm(db_session(), user, codename)
    return cache[codename]


def _login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _login_redirect()
        return fn(*args, **kwargs)

    return wrapped


def admin_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _login_redirect()
        if not user.is_admin:
            g.missing_permission = "is_admin"
            abort(403)
        return fn(*args, **kwargs)

    return wrapped


def permission_required(codename: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → redirect to login (UX + reduces confusion).
            if not user or not user.is_active:
                return _login_redirect()
            # Authenticated but unauthorized → 403
            if not current_user_has_perm(codename):
                g.missing_permission = codename
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
