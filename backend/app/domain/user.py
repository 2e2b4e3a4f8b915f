"""
Authenticated user identity extracted from a verified Supabase JWT.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuthenticatedUser:
    """The caller of a billing endpoint."""
    id: str
    email: Optional[str] = None
