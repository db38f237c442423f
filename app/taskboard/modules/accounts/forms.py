from __future__ import annotations

import re
from typing import Any

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.taskboard.forms import ModelForm, load_by_ids
from app.taskboard.models import Group, Permission, User
from app.taskboard.modules.todos.service import ungroup_todos
from app.taskboard.security import hash_password

USERNAME_MAX_LENGTH = 150
PASSWORD_MIN_LENGTH = 8
GROUP_NAME_MAX_LENGTH = 150
CODENAME_MAX_LENGTH = 100

# Same character set Django allows in usernames: letters, digits and @/./+/-/_
USERNAME_RE = re.compile(r"^[\w.@+-]+$")
CODENAME_RE = re.compile(r"^[a-z][a-z0-9_]*\.[a-z][a-z0-9_]*$")


def validate_username(username: str) -> list[str]:
    if not username or len(username) > USERNAME_MAX_LENGTH:
        return [f"Username must be between 1 and {USERNAME_MAX_LENGTH} characters."]
    if not USERNAME_RE.match(username):
        return ["Username may contain only letters, digits and @/./+/-/_ characters."]
    return []


def validate_password(password: str, *, required: bool) -> list[str]:
    if not password:
        return ["Password is required."] if required else []
    if len(password) < PASSWORD_MIN_LENGTH:
        return [f"Password must be at least {PASSWORD_MIN_LENGTH} characters."]
    return []


class UserForm(ModelForm):
    text_fields = ("username",)
    raw_fields = ("password",)
    bool_fields = ("is_admin", "is_active")
    id_list_fields = ("group_ids", "permission_ids")
    defaults = {"is_active": True}

    @classmethod
    def initial_from_instance(cls, instance: User) -> dict[str, Any]:
        return {
            "username": instance.username,
            "is_admin": instance.is_admin,
            "is_active": instance.is_active,
            "group_ids": [grp.id for grp in instance.groups],
            "permission_ids": [p.id for p in instance.user_permissions],
        }

    def validate(self, s: Session) -> list[str]:
        username = self.data["username"]
        errors = validate_username(username)
        errors += validate_password(self.data["password"], required=self.instance is None)

        if not errors:
            q = s.query(User.id).filter(User.username == username)
            if self.instance is not None:
                q = q.filter(User.id != self.instance.id)
            if q.first() is not None:
                errors.append("This username is already in use.")

        actor = g.get("current_user") if has_request_context() else None
        if self.instance is not None and actor is not None and actor.id == self.instance.id:
            if not self.data["is_active"]:
                errors.append("You cannot deactivate your own account.")
            if self.instance.is_admin and not self.data["is_admin"]:
                errors.append("You cannot remove your own admin status.")
        return errors

    def save(self, s: Session) -> User:
        user = self.instance
        if user is None:
            user = User(username=self.data["username"], password_hash=hash_password(self.data["password"]))
            s.add(user)
        else:
            user.username = self.data["username"]
            if self.data["password"]:
                user.password_hash = hash_password(self.data["password"])
        user.is_admin = self.data["is_admin"]
        user.is_active = self.data["is_active"]
        # Junction-table replacement: SQLAlchemy diffs the collections into group_users/user_permissions.
        user.groups = load_by_ids(s, Group, self.data["group_ids"])
        user.user_permissions = load_by_ids(s, Permission, self.data["permission_ids"])
        if user.id is not None:
            ungroup_todos(s, user_id=user.id, keep_ids=[grp.id for grp in user.groups])
        self.instance = user
        return user


class GroupForm(ModelForm):
    text_fields = ("name",)
    id_list_fields = ("permission_ids", "user_ids")

    @classmethod
    def initial_from_instance(cls, instance: Group) -> dict[str, Any]:
        return {
            "name": instance.name,
            "permission_ids": [p.id for p in instance.permissions],
            "user_ids": [u.id for u in instance.users],
        }

    def validate(self, s: Session) -> list[str]:
        name = self.data["name"]
        if not name:
            return ["Name is required."]
        if len(name) > GROUP_NAME_MAX_LENGTH:
            return [f"Name must be at most {GROUP_NAME_MAX_LENGTH} characters."]
        q = s.query(Group.id).filter(Group.name == name)
        if self.instance is not None:
            q = q.filter(Group.id != self.instance.id)
        if q.first() is not None:
            return ["A group with this name already exists."]
        return []

    def save(self, s: Session) -> Group:
        group = self.instance
        if group is None:
            group = Group(name=self.data["name"])
            s.add(group)
        else:
            group.name = self.data["name"]
        group.permissions = load_by_ids(s, Permission, self.data["permission_ids"])
        group.users = load_by_ids(s, User, self.data["user_ids"])
        if group.id is not None:
            ungroup_todos(s, group_id=group.id, keep_ids=[u.id for u in group.users])
        self.instance = group
        return group


class PermissionForm(ModelForm):
    text_fields = ("name", "codename")

    def validate(self, s: Session) -> list[str]:
        errors = []
        name = self.data["name"]
        codename = self.data["codename"]
        if not name:
            errors.append("Name is required.")
        elif len(name) > 255:
            errors.append("Name must be at most 255 characters.")
        if not codename:
            errors.append("Codename is required.")
        elif len(codename) > CODENAME_MAX_LENGTH or not CODENAME_RE.match(codename):
            errors.append('Codename must look like "app_label.action_model" (lowercase, e.g. "auth.view_user").')
        else:
            q = s.query(Permission.id).filter(Permission.codename == codename)
            if self.instance is not None:
                q = q.filter(Permission.id != self.instance.id)
            if q.first() is not None:
                errors.append("A permission with this codename already exists.")
        return errors

    def save(self, s: Session) -> Permission:
        perm = self.instance
        if perm is None:
            perm = Permission(name=self.data["name"], codename=self.data["codename"])
            s.add(perm)
        else:
            perm.name = self.data["name"]
            perm.codename = self.data["codename"]
        self.instance = perm
        return perm
