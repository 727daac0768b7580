"""Kaiten resource client and request parameter models."""

from .kaiten import IDEMPOTENCY_HEADER, KaitenClient, new_idempotency_key
from .params import CardCreate, CardSearch, CardUpdate, UserQuery

__all__ = [
    "IDEMPOTENCY_HEADER", "KaitenClient", "new_idempotency_key",
    "CardCreate", "CardSearch", "CardUpdate", "UserQuery",
]
