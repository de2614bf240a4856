"""Immutable values resolved once per invocation."""
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class Endpoint:
    """Network address of a cluster service."""
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """Identity-service admin login."""
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"
