from flask import Blueprint, g, render_template, request

from app.taskboard.db import db_session
from app.taskboard.models import AuditEvent, Group, Permission, User
from app.taskboard.modules.todos.models import Todo
from app.taskboard.rbac import admin_required, get_all_permissions, login_required

bp = Blueprint("admin", __name__)

AUDIT_LIST_LIMIT = 200


@bp.get("/")
@admin_required
def index():
    s = db_session()
    counts = {
        "users": s.query(User).count(),
        "active_users": s.query(User).filter(User.is_active.is_(True)).count(),
        "groups": s.query(Group).count(),
        "permissions": s.query(Permission).count(),
        "todos": s.query(Todo).count(),
        "open_todos": s.query(Todo).filter(Todo.completed.is_(False)).count(),
    }
    recent_events = s.query(AuditEvent).order_by(AuditEvent.id.desc()).limit(10).all()
    return render_template("admin/dashboard.html", counts=counts, recent_events=recent_events)


@bp.get("/me")
@login_required
def me():
    s = db_session()
    user = g.current_user
    group_names = sorted(grp.name for grp in user.groups)
    perm_keys = sorted(get_all_permissions(s, user))
    return render_template("admin/me.html", user=user, group_names=group_names, perm_keys=perm_keys)


@bp.get("/audit")
@admin_required
def audit_list():
    """
    Latest audit events, optionally narrowed by:
    - action (contains)
    - actor (username contains)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor = (request.args.get("actor") or "").strip()

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor:
        q = q.filter(AuditEvent.actor_username.ilike(f"%{actor}%"))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIST_LIMIT).all()
    return render_template("admin/audit/list.html", events=events, action=action, actor=actor)
