import logging
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from database import RIDERS, DocumentStore
from schemas import RiderStatus

logger = logging.getLogger(__name__)


def matches_search(rider: dict, term: str) -> bool:
    return term.lower() in str(rider.get("name") or "").lower() or term in str(rider.get("phone") or "")


def rider_stats(riders: List[dict]) -> dict:
    return {
        "totalRiders": len(riders),
        "activeRiders": sum(1 for r in riders if r.get("status") == RiderStatus.active.value),
    }


def active_riders(store: DocumentStore) -> List[dict]:
    return store.get_documents(RIDERS, {"status": RiderStatus.active.value})


class RiderRoster:
    """Local view of the delivery partners.

    Status toggles are applied locally first; if the write fails the whole view
    is re-read from the store before the error propagates.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self.riders: Dict[str, dict] = {}

    def refresh(self) -> List[dict]:
        self.riders = {r["id"]: r for r in self.store.get_documents(RIDERS)}
        return list(self.riders.values())

    def get(self, rider_id: str) -> Optional[dict]:
        if rider_id not in self.riders:
            self.refresh()
        return self.riders.get(rider_id)

    def toggle_status(self, rider_id: str) -> dict:
        rider = self.get(rider_id)
        if rider is None:
            raise KeyError(rider_id)
        new_status = RiderStatus.inactive.value if rider.get("status") == RiderStatus.active.value else RiderStatus.active.value
        self.riders[rider_id] = {**rider, "status": new_status}
        try:
            if not self.store.update_document(RIDERS, rider_id, {"status": new_status}):
                raise KeyError(rider_id)
        except (PyMongoError, KeyError):
            logger.exception("Failed to update rider %s, reloading roster", rider_id)
            self.refresh()
            raise
        logger.info("Rider %s is now %s", rider_id, new_status)
        return self.riders[rider_id]
