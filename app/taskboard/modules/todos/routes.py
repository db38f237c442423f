from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.taskboard.db import db_session
from app.taskboard.modules.todos.models import PRIORITY_LABELS, PRIORITY_LOW
from app.taskboard.modules.todos.service import (
    create_todo,
    delete_todo,
    get_todo_for_user,
    list_todos_for_user,
    toggle_todo,
    update_todo,
    validate_todo_payload,
)
from app.taskboard.rbac import login_required

bp = Blueprint("todo", __name__)

_FIELDS = ("title", "description", "priority", "group_id", "completed")


def _payload_from_form() -> dict:
    return {name: request.form.get(name) for name in _FIELDS}


def _render_form(form: dict, errors: list[str], todo=None):
    return render_template(
        "todo/form.html",
        form=form,
        errors=errors,
        todo=todo,
        is_edit=todo is not None,
        priorities=sorted(PRIORITY_LABELS.items()),
        groups=g.current_user.groups,
    )


def _not_found():
    flash("TODO not found.", "danger")
    return redirect(url_for("todo.todo_list"))


@bp.get("/")
@login_required
def todo_list():
    s = db_session()
    todos = list_todos_for_user(s, g.current_user)
    open_count = sum(1 for t in todos if not t.completed)
    return render_template("todo/list.html", todos=todos, open_count=open_count)


# ---------- Create ----------
@bp.get("/create")
@login_required
def todo_create_get():
    form = {"title": "", "description": "", "priority": str(PRIORITY_LOW), "group_id": "", "completed": ""}
    return _render_form(form, [])


@bp.post("/create")
@login_required
def todo_create_post():
    s = db_session()
    payload = _payload_from_form()
    errors = validate_todo_payload(payload, g.current_user)
    if errors:
        return _render_form(payload, errors)

    todo = create_todo(s, payload, g.current_user)
    s.commit()
    current_app.logger.info("Todo created id=%s user_id=%s", todo.id, g.current_user.id)
    flash(f'Created TODO "{todo.title}".', "success")
    return redirect(url_for("todo.todo_list"))


# ---------- Edit ----------
@bp.get("/edit/<int:todo_id>")
@login_required
def todo_edit_get(todo_id: int):
    s = db_session()
    todo = get_todo_for_user(s, g.current_user, todo_id)
    if not todo:
        return _not_found()
    form = {
        "title": todo.title,
        "description": todo.description or "",
        "priority": str(todo.priority),
        "group_id": str(todo.group_id or ""),
        "completed": "on" if todo.completed else "",
    }
    return _render_form(form, [], todo)


@bp.post("/edit/<int:todo_id>")
@login_required
def todo_edit_post(todo_id: int):
    s = db_session()
    todo = get_todo_for_user(s, g.current_user, todo_id)
    if not todo:
        return _not_found()

    payload = _payload_from_form()
    errors = validate_todo_payload(payload, g.current_user)
    if errors:
        return _render_form(payload, errors, todo)

    update_todo(s, todo, payload, g.current_user)
    s.commit()
    flash(f'Updated TODO "{todo.title}".', "success")
    return redirect(url_for("todo.todo_list"))


# ---------- Toggle / Delete ----------
@bp.post("/toggle/<int:todo_id>")
@login_required
def todo_toggle(todo_id: int):
    s = db_session()
    todo = get_todo_for_user(s, g.current_user, todo_id)
    if not todo:
        return _not_found()
    toggle_todo(s, todo, g.current_user)
    s.commit()
    return redirect(url_for("todo.todo_list"))


@bp.post("/delete/<int:todo_id>")
@login_required
def todo_delete(todo_id: int):
    s = db_session()
    todo = get_todo_for_user(s, g.current_user, todo_id)
    if not todo:
        return _not_found()
    title = todo.title
    delete_todo(s, todo, g.current_user)
    s.commit()
    flash(f'Deleted TODO "{title}".', "success")
    return redirect(url_for("todo.todo_list"))
