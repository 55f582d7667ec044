"""Single source of truth for who counts as an administrator.

An account is an admin when its stored ``is_admin`` flag is set or its email
appears in the ADMIN_EMAILS allow-list. Every admin-only route goes through
``get_admin_user``, which asks this policy.
"""

from typing import Any, Mapping

from footbet.config import settings


class AdminPolicy:
    def __init__(self, allow_list: set[str] | None = None):
        self._allow_list = allow_list

    @property
    def allow_list(self) -> set[str]:
        # Read per call so a settings reload takes effect without a restart.
        return self._allow_list if self._allow_list is not None else settings.admin_emails

    def is_admin(self, user: Mapping[str, Any] | None) -> bool:
        if not user:
            return False
        if user.get("is_banned"):
            return False
        if user.get("is_admin"):
            return True
        email = str(user.get("email") or "").strip().lower()
        return bool(email) and email in self.allow_list


admin_policy = AdminPolicy()
