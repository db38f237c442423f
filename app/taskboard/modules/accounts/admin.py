from __future__ import annotations

from typing import Any

from flask import Blueprint
from sqlalchemy.orm import Session

from app.taskboard.models import Group, Permission, User
from app.taskboard.modules.accounts.forms import GroupForm, PermissionForm, UserForm
from app.taskboard.views import AdminFilter, AdminResource, Column, register_resource

bp = Blueprint("accounts", __name__)


def _relation_choices(s: Session) -> dict[str, Any]:
    return {
        "all_groups": s.query(Group).order_by(Group.name.asc()).all(),
        "all_permissions": s.query(Permission).order_by(Permission.codename.asc()).all(),
        "all_users": s.query(User).order_by(User.username.asc()).all(),
    }


class UserResource(AdminResource):
    name = "users"
    model = User
    form_class = UserForm
    model_name = "user"
    verbose_name = "user"
    verbose_name_plural = "users"
    form_template = "admin/users/form.html"

    columns = (
        Column("id", "ID", sortable=True),
        Column("username", "Username", sortable=True),
        Column("is_active", "Active", sortable=True),
        Column("is_admin", "Admin", sortable=True),
        Column("groups", "Groups"),
    )
    search_fields = ("username",)
    filters = (
        AdminFilter.boolean("Active", "is_active"),
        AdminFilter.boolean("Admin", "is_admin"),
    )

    def get_context_data(self, s: Session) -> dict[str, Any]:
        return _relation_choices(s)

    def cell(self, obj: User, field_name: str) -> Any:
        if field_name == "groups":
            return ", ".join(grp.name for grp in obj.groups)
        return super().cell(obj, field_name)

    def object_label(self, obj: User) -> str:
        return obj.username

    def delete_denied_reason(self, obj: User, user: User) -> str | None:
        if user is not None and obj.id == user.id:
            return "You cannot delete your own account."
        return None


class GroupResource(AdminResource):
    name = "groups"
    model = Group
    form_class = GroupForm
    model_name = "group"
    verbose_name = "group"
    verbose_name_plural = "groups"
    form_template = "admin/groups/form.html"

    columns = (
        Column("id", "ID", sortable=True),
        Column("name", "Name", sortable=True),
        Column("member_count", "Members"),
        Column("permission_count", "Permissions"),
    )
    search_fields = ("name",)

    def get_context_data(self, s: Session) -> dict[str, Any]:
        return _relation_choices(s)

    def cell(self, obj: Group, field_name: str) -> Any:
        if field_name == "member_count":
            return len(obj.users)
        if field_name == "permission_count":
            return len(obj.permissions)
        return super().cell(obj, field_name)

    def object_label(self, obj: Group) -> str:
        return obj.name


class PermissionResource(AdminResource):
    name = "permissions"
    model = Permission
    form_class = PermissionForm
    model_name = "permission"
    verbose_name = "permission"
    verbose_name_plural = "permissions"
    form_template = "admin/permissions/form.html"

    columns = (
        Column("id", "ID", sortable=True),
        Column("name", "Name", sortable=True),
        Column("codename", "Codename", sortable=True),
    )
    search_fields = ("name", "codename")

    def object_label(self, obj: Permission) -> str:
        return obj.codename


users = register_resource(bp, UserResource())
groups = register_resource(bp, GroupResource())
permissions = register_resource(bp, PermissionResource())
