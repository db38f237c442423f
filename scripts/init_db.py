import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy.orm import Session  # noqa: E402

from app.taskboard.models import Group, Permission, User  # noqa: E402
from app.taskboard.security import hash_password  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402

ADMIN_GROUP_NAME = "Administrators"

# (model_name, verbose_name) for every admin-managed model
MANAGED_MODELS = (
    ("user", "user"),
    ("group", "group"),
    ("permission", "permission"),
)
ACTIONS = ("view", "add", "change", "delete")


def default_permissions() -> list[tuple[str, str]]:
    """(codename, display name) pairs, e.g. ("auth.view_user", "Can view user")."""
    return [
        (f"auth.{action}_{model}", f"Can {action} {verbose}")
        for model, verbose in MANAGED_MODELS
        for action in ACTIONS
    ]


def seed_permissions(s: Session) -> list[Permission]:
    perms = []
    for codename, name in default_permissions():
        p = s.query(Permission).filter(Permission.codename == codename).one_or_none()
        if not p:
            p = Permission(codename=codename, name=name)
            s.add(p)
        perms.append(p)
    return perms


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions, the Administrators group and the admin user idempotently.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "admin"

    with script_session(resolve_database_url(database_url)) as s:
        perms = seed_permissions(s)

        group = s.query(Group).filter(Group.name == ADMIN_GROUP_NAME).one_or_none()
        if not group:
            group = Group(name=ADMIN_GROUP_NAME)
            s.add(group)
        for p in perms:
            if p not in group.permissions:
                group.permissions.append(p)

        user = s.query(User).filter(User.username == admin_username).one_or_none()
        if not user:
            user = User(username=admin_username, password_hash=hash_password(admin_password), is_active=True)
            s.add(user)
        user.is_admin = True
        if group not in user.groups:
            user.groups.append(group)

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
