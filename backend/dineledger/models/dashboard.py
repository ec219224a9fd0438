"""
Read models assembled from many small records
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SubjectSummary(BaseModel):
    """Visits to one restaurant"""
    visit_count: int
    subject_address: str


class DishAggregate(BaseModel):
    """All dish records sharing a display name"""
    name: str
    count: int = 0
    contributing_addresses: List[str] = Field(default_factory=list)
    contributing_dish_ids: List[str] = Field(default_factory=list)


class UserDashboard(BaseModel):
    """Per-user view: visits keyed by restaurant identity, dishes keyed by name"""
    user: str
    subjects: Dict[str, SubjectSummary] = Field(default_factory=dict)
    dishes_by_name: Dict[str, DishAggregate] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.subjects and not self.dishes_by_name

    def top_dishes(self, limit: Optional[int] = None) -> List[DishAggregate]:
        """Dishes ordered by total count, most ordered first"""
        ordered = sorted(self.dishes_by_name.values(), key=lambda d: (-d.count, d.name))
        return ordered[:limit] if limit is not None else ordered


class ProcessedReview(BaseModel):
    """Review as displayed on a restaurant page"""
    address: str
    user: str
    restaurant: str
    rating: int
    review_text: str
    confidence_level: int
