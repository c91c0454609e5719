from __future__ import annotations

import logging
import sqlite3

from pms.domain.errors import AuthorizationError, NotFoundError, ValidationError
from pms.domain.models import ROLES, User
from pms.domain.validation import require_positive_int, require_text

log = logging.getLogger(__name__)


PERMISSIONS: dict[str, set[str]] = {
    "create_bill": {"admin", "manager", "pharmacist"},
    "void_bill": {"admin"},
    "record_transaction": {"admin", "manager", "pharmacist"},
    "manage_medicines": {"admin", "manager", "dataentry"},
    "manage_purchases": {"admin", "manager"},
    "manage_suppliers": {"admin", "manager"},
    "manage_prescriptions": {"admin", "manager", "pharmacist", "dataentry"},
    "view_reports": {"admin", "manager"},
    "import_excel": {"admin", "manager", "dataentry"},
    "manage_users": {"admin"},
    "manage_settings": {"admin"},
}


class UserService:
    def __init__(self, repo):
        self.repo = repo

    def list_users(self, include_inactive: bool = False) -> list[User]:
        return self.repo.list_users(include_inactive=include_inactive)

    def get_user(self, user_id: int) -> User:
        user = self.repo.get_user(int(user_id))
        if not user:
            raise NotFoundError(f"User #{user_id} not found.")
        return user

    def can(self, user: User, action: str) -> bool:
        allowed_roles = PERMISSIONS.get(action)
        if not allowed_roles or not user.is_active:
            return False
        return user.role in allowed_roles

    def require_action(self, user: User, action: str) -> None:
        if not self.can(user, action):
            raise AuthorizationError(f"Role '{user.role}' is not allowed to perform '{action}'.")

    def create_user(self, actor: User, username: str, full_name: str, role: str = "dataentry") -> User:
        self.require_action(actor, "manage_users")

        name = require_text(username, "Username")
        full = require_text(full_name, "Full name")
        target_role = (role or "").strip().lower()
        if target_role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")

        try:
            user_id = self.repo.create_user(name, full, target_role)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Username '{name}' is already taken.") from exc
        log.info("user_created user_id=%s username=%s role=%s actor=%s", user_id, name, target_role, actor.id)
        return self.get_user(user_id)

    def deactivate_user(self, actor: User, user_id: int) -> None:
        self.require_action(actor, "manage_users")
        target = self.get_user(require_positive_int(user_id, "User id"))
        if target.id == actor.id:
            raise ValidationError("You cannot deactivate your own account.")
        if target.role == "admin" and target.is_active and self.repo.count_active_admins() <= 1:
            raise ValidationError("Cannot deactivate the only admin.")
        self.repo.set_user_active(target.id, False)
        log.info("user_deactivated user_id=%s actor=%s", target.id, actor.id)
