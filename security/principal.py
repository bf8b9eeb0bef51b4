from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class AuthPrincipal(BaseModel):
    user_id: str
    role: Literal['user', 'admin'] = 'user'
    jwt_token: str
    issued_at: int | None = None
