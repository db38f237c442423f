import pytest
from werkzeug.datastructures import MultiDict

from app.taskboard import create_app
from app.taskboard.db import session_scope
from app.taskboard.models import Base, Group, Permission, User
from app.taskboard.modules.accounts.forms import (
    GroupForm,
    PermissionForm,
    UserForm,
    validate_password,
    validate_username,
)
from app.taskboard.security import hash_password
from app.taskboard.views import AdminFilter, paginate, parse_id_list, parse_page


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add_all(
            [
                User(username="alice", password_hash=hash_password("alice-pass")),
                Group(name="Staff"),
                Permission(codename="auth.view_user", name="Can view user"),
            ]
        )
    return app


@pytest.mark.parametrize("username", ["a", "alice", "a.b@c+d-e_f", "x" * 150, "Zoë"])
def test_valid_usernames(username):
    assert validate_username(username) == []


@pytest.mark.parametrize("username", ["", "x" * 151, "with space", "semi;colon", "slash/"])
def test_invalid_usernames(username):
    assert validate_username(username) != []


def test_password_rules():
    assert validate_password("", required=False) == []
    assert validate_password("", required=True) == ["Password is required."]
    assert validate_password("1234567", required=False) == ["Password must be at least 8 characters."]
    assert validate_password("12345678", required=True) == []


def test_from_request_normalizes_values():
    form = UserForm.from_request(
        MultiDict(
            [
                ("username", "  carol  "),
                ("password", " spaced pass "),
                ("is_admin", "on"),
                ("group_ids", "3"),
                ("group_ids", "1"),
                ("group_ids", "3"),
                ("group_ids", "x"),
            ]
        )
    )
    assert form.data == {
        "username": "carol",
        "password": " spaced pass ",
        "is_admin": True,
        "is_active": False,
        "group_ids": [1, 3],
        "permission_ids": [],
    }


def test_initial_values():
    assert UserForm.initial(None)["is_active"] is True
    assert GroupForm.initial(None) == {"name": "", "permission_ids": [], "user_ids": []}


def test_user_form_outside_request(app):
    with session_scope(app) as s:
        form = UserForm.from_request(MultiDict({"username": "alice", "password": "long-enough"}))
        assert not form.is_valid(s)
        assert form.errors == ["This username is already in use."]

        form = UserForm.from_request(MultiDict({"username": "dave", "password": "long-enough", "is_active": "1"}))
        assert form.is_valid(s)
        user = form.save(s)
        s.flush()
        assert user.id is not None and user.is_active


def test_group_form_unique_name(app):
    with session_scope(app) as s:
        staff = s.query(Group).filter_by(name="Staff").one()
        assert GroupForm.from_request(MultiDict({"name": "Staff"}), instance=staff).is_valid(s)
        assert not GroupForm.from_request(MultiDict({"name": "Staff"})).is_valid(s)


@pytest.mark.parametrize(
    "codename,ok",
    [
        ("auth.view_user", False),  # taken
        ("auth.view_todo", True),
        ("todo.export_todo2", True),
        ("auth", False),
        ("Auth.view_todo", False),
        ("auth.view.todo", False),
        ("1auth.view", False),
    ],
)
def test_permission_codename_rules(app, codename, ok):
    with session_scope(app) as s:
        form = PermissionForm.from_request(MultiDict({"name": "Some permission", "codename": codename}))
        assert form.is_valid(s) is ok


def test_parse_helpers():
    assert parse_page(None) == 1
    assert parse_page("0") == 1
    assert parse_page("-4") == 1
    assert parse_page("7") == 7
    assert parse_page("seven") == 1
    assert parse_id_list(["5", "2", "", "two", "5"]) == [2, 5]
    assert parse_id_list(["0", "-3", "9223372036854775807", "9223372036854775808", "99999999999999999999"]) == [
        9223372036854775807
    ]


def test_boolean_filter_only_applies_known_choices(app):
    f = AdminFilter.boolean("Active", "is_active")
    with session_scope(app) as s:
        s.add(User(username="zed", password_hash=hash_password("zed-pass"), is_active=False))
        s.flush()
        q = s.query(User)
        assert [u.username for u in f.apply(q, User, "false").all()] == ["zed"]
        assert len(f.apply(q, User, "TRUE").all()) == 2


def test_paginate(app):
    with session_scope(app) as s:
        for i in range(7):
            s.add(User(username=f"user{i}", password_hash="x"))
        s.flush()
        page = paginate(s.query(User).order_by(User.id), 3, 3)
        assert page.total == 8
        assert page.num_pages == 3
        assert len(page.items) == 2
        assert page.has_prev and not page.has_next


def test_paginate_clamps_page_to_last(app):
    with session_scope(app) as s:
        query = s.query(User).order_by(User.id)
        page = paginate(query, 10**20, 3)
        assert (page.page, page.num_pages) == (1, 1)
        assert [u.username for u in page.items] == ["alice"]

        empty = paginate(query.filter(User.username == "nobody"), 5, 3)
        assert (empty.page, empty.total, empty.items) == (1, 0, [])
        assert not empty.has_prev and not empty.has_next
