"""Application services."""

from .review import ReviewService, ReviewSession, get_review_service, reset_review_state

__all__ = [
    "ReviewService",
    "ReviewSession",
    "get_review_service",
    "reset_review_state",
]
