"""
Query builder state.

`QueryState` accumulates everything a chain of builder calls declares before a
terminal operation runs. It is owned by exactly one Model instance and is
only cleared by an explicit reset.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple


class Cardinality(Enum):
    """How many documents a terminal write operation targets."""

    UNSPECIFIED = "unspecified"
    SINGLE = "single"
    MULTI = "multi"


@dataclass
class QueryState:
    """Mutable builder state for one Model instance."""

    filters: List[Dict[str, Any]] = field(default_factory=list)
    visible: Set[str] = field(default_factory=set)
    cardinality: Cardinality = Cardinality.UNSPECIFIED
    upsert: bool = False
    projection: Optional[Dict[str, Any]] = None
    sort: List[Tuple[str, Any]] = field(default_factory=list)
    skip: int = 0
    limit: int = 0

    @property
    def has_filter(self) -> bool:
        return bool(self.filters)

    @property
    def is_multi(self) -> bool:
        return self.cardinality is Cardinality.MULTI

    def add_filter(self, expression: Dict[str, Any]) -> None:
        """AND an expression onto the accumulated filter. Empty expressions add nothing."""
        if expression:
            self.filters.append(dict(expression))

    def filter_document(self) -> Dict[str, Any]:
        """The accumulated filter as a single document."""
        if not self.filters:
            return {}
        if len(self.filters) == 1:
            return dict(self.filters[0])
        return {"$and": [dict(f) for f in self.filters]}
