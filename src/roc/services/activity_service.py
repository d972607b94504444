from __future__ import annotations

import logging
from typing import Optional

from roc.domain.models import ActivityEntry
from roc.repositories.unit_of_work import now_iso

log = logging.getLogger("roc.activity")

ACTIONS = {"create", "update", "delete", "transfer", "complete", "cancel", "receive", "adjust"}
ENTITY_TYPES = {"wallet", "purchase_order", "exchange_rate", "item", "location", "client"}


class ActivityLog:
    """Best-effort audit trail. Writes happen after the core operation has
    committed and a failed write is logged, never raised."""

    def __init__(self, repo):
        self.repo = repo

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: object = None,
        entity_name: Optional[str] = None,
        details: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> None:
        if action not in ACTIONS or entity_type not in ENTITY_TYPES:
            log.warning("activity_unknown_kind action=%s entity_type=%s", action, entity_type)
        try:
            self.repo.insert_activity(
                now_iso(),
                action,
                entity_type,
                str(entity_id) if entity_id is not None else None,
                entity_name,
                details,
                user_id,
            )
        except Exception as e:
            log.warning("activity_write_failed action=%s entity_type=%s entity_id=%s error=%s", action, entity_type, entity_id, e)

    def recent(self, limit: int = 100) -> list[ActivityEntry]:
        return self.repo.recent_activity(limit)
