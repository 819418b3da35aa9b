from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class PendingRequest:
    unique_id: str
    action: str
    payload: dict


class Correlator:
    """Match incoming results to the outbound CALL they answer.

    Requests are keyed by message id and dropped once resolved, so a
    StatusNotification result can no longer be mistaken for the result
    of a StartTransaction sent just before it.
    """

    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}
        self.last_action: Optional[str] = None

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, unique_id: str) -> bool:
        return unique_id in self._pending

    def add(self, unique_id: str, action: str, payload: dict) -> PendingRequest:
        req = PendingRequest(unique_id, action, payload)
        self._pending[unique_id] = req
        self.last_action = action
        return req

    def pop(self, unique_id: str) -> Optional[PendingRequest]:
        return self._pending.pop(unique_id, None)

    def clear(self) -> None:
        """Forget outstanding requests; their results can no longer arrive."""
        self._pending.clear()
