from typing import Optional

from pydantic import BaseModel


class AuthContext(BaseModel):
    """Caller identity resolved from the bearer token"""
    user_id: str
    store_id: int
    role: Optional[str] = None
