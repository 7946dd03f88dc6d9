from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Supabase ``app_role`` values that grant back-office access.
ADMIN_ROLES = frozenset({"super_admin", "admin_gudang", "admin_keuangan"})


class AuthUser(BaseModel):
    """
    Represents an authenticated user from a Supabase access token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_role: Optional[str] = None

    @property
    def app_role(self) -> str:
        """Application role: ``admin``, ``courier`` or ``buyer``."""
        raw = self.app_metadata.get("role") or self.user_role or "buyer"
        if raw in ADMIN_ROLES or self.role == "service_role":
            return "admin"
        if raw == "courier":
            return "courier"
        return "buyer"
