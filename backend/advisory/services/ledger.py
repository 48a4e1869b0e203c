"""Access Grant Ledger: which advisors may view which clients."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional, Set, Tuple

from ..models import AccessGrant
from ..ports import AdvisoryRepoProtocol

logger = logging.getLogger("rollover.advisory.ledger")


@dataclass
class AccessGrantLedger:
    repo: AdvisoryRepoProtocol

    def get(self, client_id: str, advisor_id: str) -> Optional[AccessGrant]:
        if not client_id or not advisor_id:
            return None
        return self.repo.get_grant(client_id, advisor_id)

    def grant(self, firm_id: str, client_id: str, advisor_id: str, granted_by: str) -> AccessGrant:
        """Idempotent upsert keyed by (client_id, advisor_id); last write wins on metadata."""
        grant, changed = self.repo.upsert_grant(firm_id, client_id, advisor_id, granted_by)
        if changed:
            logger.info("Access granted: cid_tail=%s aid_tail=%s", client_id[-6:], advisor_id[-6:])
        return grant

    def revoke(self, client_id: str, advisor_id: str) -> bool:
        """Remove the grant if present. Returns whether a row was removed; absence is not an error."""
        removed = self.repo.delete_grant(client_id, advisor_id)
        if removed:
            logger.info("Access revoked: cid_tail=%s aid_tail=%s", client_id[-6:], advisor_id[-6:])
        return removed

    def list_for_advisor(self, advisor_id: str) -> Set[str]:
        return {g.client_id for g in self.repo.list_grants_for_advisor(advisor_id)}

    def list_for_client(self, client_id: str) -> Set[Tuple[str, str, str]]:
        """Sharing roster: {(advisor_id, granted_by, created_at)}."""
        return {(g.advisor_id, g.granted_by, g.created_at) for g in self.repo.list_grants_for_client(client_id)}


__all__ = ["AccessGrantLedger"]
