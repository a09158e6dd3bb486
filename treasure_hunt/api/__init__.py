"""
API routers package
"""
from treasure_hunt.api import (
    system,
    games,
    users,
    admin
)

__all__ = [
    "system",
    "games",
    "users",
    "admin"
]
