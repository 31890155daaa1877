"""Tab ownership table: which session owns which browser tab."""

import datetime
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

from ..errors import OwnershipConflict

import logging
logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass
class Claim:
    tab_id: int
    session_id: str
    claimed_at: str

    def to_dict(self) -> dict:
        return {"tabId": self.tab_id, "sessionId": self.session_id, "claimedAt": self.claimed_at}


class Decision(NamedTuple):
    allowed: bool
    owner: Optional[str] = None


class OwnershipTable:
    """
    Maps a tab id to the session that owns it.

    A tab has at most one owner. Claims are created on first touch
    (`auto_claim`) or explicitly (`claim`), overwritten only by the owner or
    by a forced claim, and removed on release or when the owning session
    disconnects (`release_all`). Nothing is persisted.
    """

    def __init__(self) -> None:
        self._claims: Dict[int, Claim] = {}

    def __len__(self) -> int:
        return len(self._claims)

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._claims

    def owner_of(self, tab_id: int) -> Optional[str]:
        claim = self._claims.get(tab_id)
        return claim.session_id if claim else None

    def get(self, tab_id: int) -> Optional[Claim]:
        return self._claims.get(tab_id)

    def check(self, tab_id: int, session_id: Optional[str]) -> Decision:
        """Allowed if the tab is unclaimed or claimed by `session_id`."""
        claim = self._claims.get(tab_id)
        if claim is None or claim.session_id == session_id:
            return Decision(True, claim.session_id if claim else None)
        return Decision(False, claim.session_id)

    def ensure_allowed(self, tab_id: int, session_id: Optional[str]) -> None:
        decision = self.check(tab_id, session_id)
        if not decision.allowed:
            raise OwnershipConflict(tab_id, decision.owner)

    def claim(self, tab_id: int, session_id: str, force: bool = False) -> Claim:
        """
        Claim `tab_id` for `session_id`.

        Succeeds when the tab is unclaimed, already owned by the caller (the
        timestamp is refreshed) or when `force` is set. Otherwise raises
        OwnershipConflict naming the current owner.
        """
        existing = self._claims.get(tab_id)
        if existing and existing.session_id != session_id and not force:
            raise OwnershipConflict(tab_id, existing.session_id)
        if existing and existing.session_id != session_id:
            logger.info(f"Tab {tab_id} taken over by {session_id} (was {existing.session_id})")
        claim = Claim(tab_id=tab_id, session_id=session_id, claimed_at=_now_iso())
        self._claims[tab_id] = claim
        return claim

    def release(self, tab_id: int, session_id: Optional[str]) -> bool:
        """
        Release `tab_id`. Returns False when it was not claimed at all.

        Raises:
            OwnershipConflict: if another session owns the tab.
        """
        existing = self._claims.get(tab_id)
        if existing is None:
            return False
        if existing.session_id != session_id:
            raise OwnershipConflict(tab_id, existing.session_id)
        del self._claims[tab_id]
        return True

    def release_all(self, session_id: str) -> List[int]:
        """Drop every claim held by `session_id` and return the released tab ids."""
        released = [tab_id for tab_id, c in self._claims.items() if c.session_id == session_id]
        for tab_id in released:
            del self._claims[tab_id]
        if released:
            logger.info(f"Released {len(released)} tab(s) held by {session_id}: {sorted(released)}")
        return released

    def auto_claim(self, tab_id: int, session_id: str) -> Optional[Claim]:
        """First-touch claim. Never overrides an existing owner."""
        if tab_id in self._claims:
            return None
        claim = Claim(tab_id=tab_id, session_id=session_id, claimed_at=_now_iso())
        self._claims[tab_id] = claim
        logger.debug(f"Auto-claimed tab {tab_id} for {session_id}")
        return claim

    def discard(self, claim: Claim) -> bool:
        """Remove `claim` only if it is still the current claim on its tab."""
        if self._claims.get(claim.tab_id) is not claim:
            return False
        del self._claims[claim.tab_id]
        logger.debug(f"Dropped claim on tab {claim.tab_id} for {claim.session_id}")
        return True

    def snapshot(self) -> List[dict]:
        """All claims as wire dicts, ordered by tab id."""
        return [self._claims[tab_id].to_dict() for tab_id in sorted(self._claims)]


__all__ = [
    "Claim",
    "Decision",
    "OwnershipTable",
]
