"""Infrastructure layer exports."""

from .gateway import InMemoryReviewGateway, ReviewGateway, configure_review_gateway, get_review_gateway
from .http_gateway import HttpReviewGateway

__all__ = [
    "HttpReviewGateway",
    "InMemoryReviewGateway",
    "ReviewGateway",
    "configure_review_gateway",
    "get_review_gateway",
]
