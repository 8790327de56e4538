"""
Pydantic schemas for session login.
"""
from pydantic import BaseModel


class SessionRead(BaseModel):
    role: str
    capabilities: list[str]
