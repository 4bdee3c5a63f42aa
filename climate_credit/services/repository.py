# climate_credit/services/repository.py

import threading
from typing import Callable, Dict, List, Optional, Protocol

from climate_credit.schemas.assessment import Assessment


class AssessmentRepository(Protocol):
    def get(self, assessment_id: str) -> Optional[Assessment]:
        ...

    def put(self, assessment: Assessment) -> Assessment:
        ...

    def list_by_owner(self, mfi_id: str) -> List[Assessment]:
        ...

    def filter(self, predicate: Callable[[Assessment], bool]) -> List[Assessment]:
        ...


class InMemoryAssessmentRepository:
    """Process-local store. Writes to the same id are last-write-wins."""

    def __init__(self):
        self._items: Dict[str, Assessment] = {}
        self._lock = threading.Lock()

    def get(self, assessment_id: str) -> Optional[Assessment]:
        with self._lock:
            item = self._items.get(assessment_id)
        # Callers mutate copies, never the stored record
        return item.model_copy(deep=True) if item is not None else None

    def put(self, assessment: Assessment) -> Assessment:
        stored = assessment.model_copy(deep=True)
        with self._lock:
            self._items[stored.id] = stored
        return assessment

    def list_by_owner(self, mfi_id: str) -> List[Assessment]:
        return self.filter(lambda a: a.mfi_id == mfi_id)

    def filter(self, predicate: Callable[[Assessment], bool]) -> List[Assessment]:
        with self._lock:
            items = list(self._items.values())
        return [a.model_copy(deep=True) for a in items if predicate(a)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
