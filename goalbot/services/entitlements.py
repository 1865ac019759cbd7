# goalbot/services/entitlements.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class EntitlementGate(Protocol):
    """Billing answers this; the engine only asks."""

    async def can_use_group_goals(self, telegram_id: int) -> bool: ...


@dataclass(frozen=True, slots=True)
class AllowListGate:
    """
    Telegram ids listed in ENTITLED_USER_IDS may use group goals.
    An empty list lets everyone through.
    """

    telegram_ids: tuple[int, ...] = ()

    async def can_use_group_goals(self, telegram_id: int) -> bool:
        if not self.telegram_ids:
            return True
        return telegram_id in self.telegram_ids
