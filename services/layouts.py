"""
Recommendation layout presentation model.

Each LayoutMode has exactly one handler; the handler decides how the visible
list is grouped into rows. Rendering itself is the presentation layer's job.
"""
from typing import Any, Callable, Dict, List, Sequence, Tuple
from dataclasses import dataclass

from schemas.cart_schemas import ScoredCandidate
from schemas.drawer_config import LayoutMode

CAROUSEL_PAGE_SIZE = 3
GRID_COLUMNS = 2


@dataclass(frozen=True)
class RecommendationView:
    layout: LayoutMode
    rows: Tuple[Tuple[ScoredCandidate, ...], ...]
    columns: int
    paginated: bool = False

    @property
    def items(self) -> List[ScoredCandidate]:
        return [item for row in self.rows for item in row]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layout": self.layout.value,
            "columns": self.columns,
            "paginated": self.paginated,
            "rows": [[c.to_dict() for c in row] for row in self.rows],
        }


def _chunk(items: Sequence[ScoredCandidate], size: int) -> Tuple[Tuple[ScoredCandidate, ...], ...]:
    return tuple(tuple(items[i:i + size]) for i in range(0, len(items), size))


def _carousel(items: Sequence[ScoredCandidate]) -> RecommendationView:
    return RecommendationView(LayoutMode.CAROUSEL, _chunk(items, CAROUSEL_PAGE_SIZE),
                              columns=CAROUSEL_PAGE_SIZE, paginated=True)


def _list(items: Sequence[ScoredCandidate]) -> RecommendationView:
    return RecommendationView(LayoutMode.LIST, _chunk(items, 1), columns=1)


def _grid(items: Sequence[ScoredCandidate]) -> RecommendationView:
    return RecommendationView(LayoutMode.GRID, _chunk(items, GRID_COLUMNS), columns=GRID_COLUMNS)


LAYOUT_HANDLERS: Dict[LayoutMode, Callable[[Sequence[ScoredCandidate]], RecommendationView]] = {
    LayoutMode.CAROUSEL: _carousel,
    LayoutMode.LIST: _list,
    LayoutMode.GRID: _grid,
}


def build_view(layout: LayoutMode, items: Sequence[ScoredCandidate]) -> RecommendationView:
    return LAYOUT_HANDLERS[layout](list(items))
