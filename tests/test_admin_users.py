"""Users admin: list/search/filter/sort/paginate, create/update/delete, bulk actions."""
import pytest

from app.taskboard import create_app
from app.taskboard.db import session_scope
from app.taskboard.models import AuditEvent, Base, Group, Permission, User
from app.taskboard.modules.todos.models import Todo
from app.taskboard.security import hash_password, verify_password


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_PAGE_SIZE", "3")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        view_user = Permission(codename="auth.view_user", name="Can view user")
        change_user = Permission(codename="auth.change_user", name="Can change user")
        viewer = User(username="viewer", password_hash=hash_password("viewer-pass"))
        viewer.user_permissions.append(view_user)
        s.add_all(
            [
                view_user,
                change_user,
                Group(name="Staff"),
                Group(name="Ops"),
                User(username="admin", password_hash=hash_password("admin-pass"), is_admin=True),
                viewer,
                User(username="charlie", password_hash=hash_password("charlie-pass")),
                User(username="alice", password_hash=hash_password("alice-pass")),
                User(username="dormant", password_hash=hash_password("dormant-pass"), is_active=False),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    client = app.test_client()
    client.post("/auth/login", data={"username": "admin", "password": "admin-pass"})
    return client


def _csrf(client):
    return client.get_cookie("csrf_token").value


def _ids(app, model, **by):
    with session_scope(app) as s:
        (field, value), = by.items()
        return s.query(model).filter(getattr(model, field) == value).one().id


# ---------- list ----------
def test_list_requires_login(app):
    r = app.test_client().get("/admin/users/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_list_renders(client):
    r = client.get("/admin/users/?per_page=ignored")
    assert r.status_code == 200
    assert b"Users administration" in r.data
    assert b"Page 1 of 2" in r.data


def test_search(client):
    r = client.get("/admin/users/?q=ALI")
    assert b"alice" in r.data
    assert b"charlie" not in r.data


def test_boolean_filter(client):
    r = client.get("/admin/users/?is_active=false")
    assert b"dormant" in r.data
    assert b"charlie" not in r.data


def test_filter_ignores_unknown_values(client):
    r = client.get("/admin/users/?is_active=maybe&sort=username&dir=asc")
    assert r.status_code == 200
    assert b"admin" in r.data and b"alice" in r.data


def test_sort_by_username(client):
    r = client.get("/admin/users/?sort=username&dir=asc")
    assert r.data.index(b"alice") < r.data.index(b"charlie")
    assert b"viewer" not in r.data

    r = client.get("/admin/users/?sort=username&dir=desc")
    assert r.data.index(b"viewer") < r.data.index(b"dormant") < r.data.index(b"charlie")
    assert b"alice" not in r.data


def test_unsortable_column_falls_back_to_default(client):
    r = client.get("/admin/users/?sort=password_hash&dir=sideways")
    assert r.status_code == 200
    # default is newest first
    assert b"dormant" in r.data


def test_pagination(client):
    r = client.get("/admin/users/?sort=username&dir=asc&page=2")
    assert b"Page 2 of 2" in r.data
    assert b"dormant" in r.data
    assert b"viewer" in r.data
    assert b"charlie" not in r.data

    r = client.get("/admin/users/?page=abc")
    assert b"Page 1 of 2" in r.data


def test_page_past_the_end_shows_last_page(client):
    for raw in ("3", "99999999999999999999"):
        r = client.get(f"/admin/users/?sort=username&dir=asc&page={raw}")
        assert r.status_code == 200
        assert b"Page 2 of 2" in r.data
        assert b"viewer" in r.data


@pytest.mark.parametrize("query", ["kind=x", "_method=POST&_external=1", "endpoint=auth.login_get&q=a"])
def test_list_drops_unknown_query_params(client, query):
    r = client.get(f"/admin/users/?{query}&sort=username")
    assert r.status_code == 200
    assert b"Page 1 of 2" in r.data
    assert b"kind=x" not in r.data
    assert b"_method" not in r.data


def test_page_links_keep_search_and_filters(client):
    r = client.get("/admin/users/?is_active=true&sort=username&dir=asc&bogus=1")
    assert b"Page 1 of 2" in r.data
    assert b"is_active=true" in r.data
    assert b"page=2" in r.data
    assert b"bogus" not in r.data


def test_viewer_can_list_but_not_change(app):
    client = app.test_client()
    client.post("/auth/login", data={"username": "viewer", "password": "viewer-pass"})
    assert client.get("/admin/users/").status_code == 200

    r = client.get("/admin/users/create")
    assert r.status_code == 403
    assert b"auth.add_user" in r.data

    r = client.post(
        f"/admin/users/delete/{_ids(app, User, username='alice')}",
        data={"csrf_token": _csrf(client)},
    )
    assert r.status_code == 403

    assert client.get("/admin/groups/").status_code == 403


# ---------- create ----------
def test_create_user_with_groups(app, client):
    staff_id = _ids(app, Group, name="Staff")
    perm_id = _ids(app, Permission, codename="auth.view_user")
    r = client.post(
        "/admin/users/create",
        data={
            "csrf_token": _csrf(client),
            "username": "  bob ",
            "password": "bob-password",
            "is_active": "on",
            "group_ids": [str(staff_id), "junk"],
            "permission_ids": [str(perm_id)],
        },
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Created user &#34;bob&#34;." in r.data

    with session_scope(app) as s:
        bob = s.query(User).filter(User.username == "bob").one()
        assert bob.is_active and not bob.is_admin
        assert verify_password("bob-password", bob.password_hash)
        assert [g.name for g in bob.groups] == ["Staff"]
        assert [p.codename for p in bob.user_permissions] == ["auth.view_user"]
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.create").count() == 1


def test_create_form_lists_relation_choices(client):
    r = client.get("/admin/users/create")
    assert r.status_code == 200
    assert b"Staff" in r.data and b"Ops" in r.data
    assert b"auth.change_user" in r.data


def test_create_rejects_duplicate_username(client):
    r = client.post(
        "/admin/users/create",
        data={"csrf_token": _csrf(client), "username": "alice", "password": "long-enough"},
    )
    assert r.status_code == 200
    assert b"This username is already in use." in r.data


@pytest.mark.parametrize(
    "username,password,message",
    [
        ("", "long-enough", b"Username must be between 1 and 150 characters."),
        ("x" * 151, "long-enough", b"Username must be between 1 and 150 characters."),
        ("has space", "long-enough", b"Username may contain only"),
        ("newbie", "", b"Password is required."),
        ("newbie", "short", b"Password must be at least 8 characters."),
    ],
)
def test_create_validation(app, client, username, password, message):
    r = client.post(
        "/admin/users/create",
        data={"csrf_token": _csrf(client), "username": username, "password": password},
    )
    assert r.status_code == 200
    assert message in r.data
    with session_scope(app) as s:
        assert s.query(User).count() == 5


# ---------- update ----------
def test_update_replaces_relations_and_keeps_password(app, client):
    staff_id = _ids(app, Group, name="Staff")
    ops_id = _ids(app, Group, name="Ops")
    alice_id = _ids(app, User, username="alice")
    with session_scope(app) as s:
        s.get(User, alice_id).groups = [s.get(Group, staff_id)]

    r = client.get(f"/admin/users/edit/{alice_id}")
    assert r.status_code == 200
    assert b"Change user alice" in r.data

    r = client.post(
        f"/admin/users/edit/{alice_id}",
        data={
            "csrf_token": _csrf(client),
            "username": "alice2",
            "password": "",
            "is_active": "on",
            "is_admin": "on",
            "group_ids": [str(ops_id)],
        },
    )
    assert r.status_code == 302

    with session_scope(app) as s:
        alice = s.get(User, alice_id)
        assert alice.username == "alice2"
        assert alice.is_admin
        assert [g.name for g in alice.groups] == ["Ops"]
        assert alice.user_permissions == []
        assert verify_password("alice-pass", alice.password_hash)


def test_update_changes_password_when_given(app, client):
    alice_id = _ids(app, User, username="alice")
    client.post(
        f"/admin/users/edit/{alice_id}",
        data={"csrf_token": _csrf(client), "username": "alice", "password": "brand-new-pass", "is_active": "on"},
    )
    with session_scope(app) as s:
        assert verify_password("brand-new-pass", s.get(User, alice_id).password_hash)


def test_update_can_keep_own_username(app, client):
    alice_id = _ids(app, User, username="alice")
    r = client.post(
        f"/admin/users/edit/{alice_id}",
        data={"csrf_token": _csrf(client), "username": "alice", "is_active": "on"},
    )
    assert r.status_code == 302


def test_update_rejects_taken_username(app, client):
    alice_id = _ids(app, User, username="alice")
    r = client.post(
        f"/admin/users/edit/{alice_id}",
        data={"csrf_token": _csrf(client), "username": "charlie", "is_active": "on"},
    )
    assert r.status_code == 200
    assert b"This username is already in use." in r.data


def test_admin_cannot_demote_self(app, client):
    admin_id = _ids(app, User, username="admin")
    r = client.post(
        f"/admin/users/edit/{admin_id}",
        data={"csrf_token": _csrf(client), "username": "admin", "is_active": "on"},
    )
    assert r.status_code == 200
    assert b"You cannot remove your own admin status." in r.data


def test_admin_cannot_deactivate_self(app, client):
    admin_id = _ids(app, User, username="admin")
    r = client.post(
        f"/admin/users/edit/{admin_id}",
        data={"csrf_token": _csrf(client), "username": "admin", "is_admin": "on"},
    )
    assert r.status_code == 200
    assert b"You cannot deactivate your own account." in r.data
    assert b"You cannot remove your own admin status." not in r.data
    with session_scope(app) as s:
        assert s.get(User, admin_id).is_active


def test_leaving_a_group_ungroups_own_todos(app, client):
    alice_id = _ids(app, User, username="alice")
    staff_id = _ids(app, Group, name="Staff")
    ops_id = _ids(app, Group, name="Ops")
    with session_scope(app) as s:
        alice = s.get(User, alice_id)
        alice.groups = [s.get(Group, staff_id), s.get(Group, ops_id)]
        s.add_all(
            [
                Todo(title="Staff task", user_id=alice_id, group_id=staff_id),
                Todo(title="Ops task", user_id=alice_id, group_id=ops_id),
            ]
        )

    r = client.post(
        f"/admin/users/edit/{alice_id}",
        data={"csrf_token": _csrf(client), "username": "alice", "is_active": "on", "group_ids": [str(ops_id)]},
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        groups = {t.title: t.group_id for t in s.query(Todo).all()}
        assert groups == {"Staff task": None, "Ops task": ops_id}


def test_update_missing_user_is_404(client):
    assert client.get("/admin/users/edit/9999").status_code == 404
    assert client.get("/admin/users/edit/99999999999999999999").status_code == 404
    r = client.post("/admin/users/edit/9999", data={"csrf_token": _csrf(client), "username": "ghost"})
    assert r.status_code == 404


# ---------- delete ----------
def test_delete_user(app, client):
    charlie_id = _ids(app, User, username="charlie")
    r = client.post(f"/admin/users/delete/{charlie_id}", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Deleted user &#34;charlie&#34;." in r.data
    with session_scope(app) as s:
        assert s.get(User, charlie_id) is None


def test_cannot_delete_self(app, client):
    admin_id = _ids(app, User, username="admin")
    r = client.post(f"/admin/users/delete/{admin_id}", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"You cannot delete your own account." in r.data
    with session_scope(app) as s:
        assert s.get(User, admin_id) is not None


def test_delete_missing_user_is_404(client):
    r = client.post("/admin/users/delete/9999", data={"csrf_token": _csrf(client)})
    assert r.status_code == 404
    r = client.post("/admin/users/delete/99999999999999999999", data={"csrf_token": _csrf(client)})
    assert r.status_code == 404


# ---------- bulk actions ----------
def test_bulk_delete_skips_self(app, client):
    ids = [_ids(app, User, username=name) for name in ("admin", "alice", "charlie")]
    r = client.post(
        "/admin/users/action",
        data={"csrf_token": _csrf(client), "action": "delete_selected", "selected_ids": [str(i) for i in ids]},
        follow_redirects=True,
    )
    assert b"Deleted 2 users." in r.data
    assert b"You cannot delete your own account." in r.data
    with session_scope(app) as s:
        assert sorted(u.username for u in s.query(User).all()) == ["admin", "dormant", "viewer"]


def test_bulk_without_selection(client):
    r = client.post(
        "/admin/users/action",
        data={"csrf_token": _csrf(client), "action": "delete_selected"},
        follow_redirects=True,
    )
    assert b"No users selected." in r.data


def test_bulk_unknown_action(client):
    r = client.post(
        "/admin/users/action",
        data={"csrf_token": _csrf(client), "action": "promote_all", "selected_ids": ["1"]},
        follow_redirects=True,
    )
    assert b"Unknown action." in r.data


def test_bulk_ignores_out_of_range_ids(app, client):
    r = client.post(
        "/admin/users/action",
        data={"csrf_token": _csrf(client), "action": "delete_selected", "selected_ids": ["99999999999999999999", "-1"]},
        follow_redirects=True,
    )
    assert b"No users selected." in r.data
    with session_scope(app) as s:
        assert s.query(User).count() == 6
