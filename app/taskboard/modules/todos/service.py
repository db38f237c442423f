from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.taskboard.audit import record_event
from app.taskboard.db import is_db_id
from app.taskboard.modules.todos.models import PRIORITY_LABELS, PRIORITY_LOW, Todo

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.taskboard.models import User


TITLE_MAX_LENGTH = 200
_TRUTHY = ("1", "on", "true", "yes", "y")


def _parse_int(raw) -> int | None:
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None
    return int(raw)


def clean_todo_payload(payload: dict) -> dict:
    """Normalize raw form values; ``priority``/``group_id`` stay raw until validated."""
    return {
        "title": (payload.get("title") or "").strip(),
        "description": (payload.get("description") or "").strip(),
        "priority": (str(payload.get("priority") or "")).strip(),
        "group_id": (str(payload.get("group_id") or "")).strip(),
        "completed": str(payload.get("completed") or "").strip().lower() in _TRUTHY,
    }


def validate_todo_payload(payload: dict, user: "User") -> list[str]:
    """Validate TODO creation/update payload. Returns list of errors."""
    errors = []
    data = clean_todo_payload(payload)

    if not data["title"]:
        errors.append("Title is required.")
    elif len(data["title"]) > TITLE_MAX_LENGTH:
        errors.append(f"Title must be at most {TITLE_MAX_LENGTH} characters.")

    try:
        priority = _parse_int(data["priority"])
    except ValueError:
        priority = -1
    if priority is not None and priority not in PRIORITY_LABELS:
        errors.append("Priority must be 1 (low), 2 (medium) or 3 (high).")

    try:
        group_id = _parse_int(data["group_id"])
    except ValueError:
        group_id = -1
    if group_id is not None and group_id not in {grp.id for grp in user.groups}:
        errors.append("Group must be one of your groups.")
    return errors


def _apply_payload(todo: Todo, payload: dict) -> None:
    data = clean_todo_payload(payload)
    todo.title = data["title"]
    todo.description = data["description"] or None
    todo.priority = _parse_int(data["priority"]) or PRIORITY_LOW
    todo.group_id = _parse_int(data["group_id"])
    todo.completed = data["completed"]


def list_todos_for_user(s: "Session", user: "User") -> list[Todo]:
    """Highest priority first, open before completed, then oldest first."""
    return (
        s.query(Todo)
        .filter(Todo.user_id == user.id)
        .order_by(Todo.priority.desc(), Todo.completed.asc(), Todo.id.asc())
        .all()
    )


def get_todo_for_user(s: "Session", user: "User", todo_id: int) -> Todo | None:
    """Another user's TODO is indistinguishable from a missing one."""
    if not is_db_id(todo_id):
        return None
    return s.query(Todo).filter(Todo.id == todo_id, Todo.user_id == user.id).one_or_none()


def create_todo(s: "Session", payload: dict, user: "User") -> Todo:
    now = datetime.utcnow()
    todo = Todo(user_id=user.id, created_at=now, updated_at=now)
    _apply_payload(todo, payload)
    s.add(todo)
    s.flush()

    record_event(
        s,
        actor=user,
        action="todo.create",
        entity_type="Todo",
        entity_id=str(todo.id),
        metadata={"title": todo.title, "priority": todo.priority, "group_id": todo.group_id},
    )
    return todo


def update_todo(s: "Session", todo: Todo, payload: dict, user: "User") -> Todo:
    before = {"title": todo.title, "priority": todo.priority, "completed": todo.completed, "group_id": todo.group_id}
    _apply_payload(todo, payload)
    todo.updated_at = datetime.utcnow()
    after = {"title": todo.title, "priority": todo.priority, "completed": todo.completed, "group_id": todo.group_id}
    changes = {k: {"old": before[k], "new": after[k]} for k in before if before[k] != after[k]}

    record_event(
        s,
        actor=user,
        action="todo.update",
        entity_type="Todo",
        entity_id=str(todo.id),
        metadata={"changes": changes},
    )
    return todo


def toggle_todo(s: "Session", todo: Todo, user: "User") -> Todo:
    todo.completed = not todo.completed
    todo.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="todo.toggle",
        entity_type="Todo",
        entity_id=str(todo.id),
        metadata={"completed": todo.completed},
    )
    return todo


def delete_todo(s: "Session", todo: Todo, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="todo.delete",
        entity_type="Todo",
        entity_id=str(todo.id),
        metadata={"title": todo.title},
    )
    s.delete(todo)


def ungroup_todos(s: "Session", *, user_id: int | None = None, group_id: int | None = None, keep_ids=()) -> int:
    """
    Clears ``group_id`` on TODOs filed under a group their owner has left.

    With ``user_id``: the user's TODOs outside the groups in ``keep_ids``.
    With ``group_id``: the group's TODOs owned by users not in ``keep_ids``.
    """
    query = s.query(Todo).filter(Todo.group_id.isnot(None))
    if user_id is not None:
        query = query.filter(Todo.user_id == user_id, Todo.group_id.notin_(list(keep_ids)))
    else:
        query = query.filter(Todo.group_id == group_id, Todo.user_id.notin_(list(keep_ids)))
    return query.update({Todo.group_id: None}, synchronize_session=False)
