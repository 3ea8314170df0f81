# app/domain/errors.py
"""
Domain exceptions for the recommendation engine.
Routers translate them to HTTP status codes; the batch orchestrator counts them.
"""


class RecommendationError(Exception):
    """Base class for all engine errors."""


class NotFound(RecommendationError):
    """A referenced product or recommendation set does not exist."""


class NoRecommendationsAvailable(RecommendationError):
    """Nothing left after selection, scoring and filtering."""

    def __init__(self, user_id: str):
        super().__init__("No recommendations available for this user")
        self.user_id = user_id


class UpstreamUnavailable(RecommendationError):
    """Catalog, activity store or recommendation store could not be reached."""


class EventPublishFailure(RecommendationError):
    """The broker rejected or timed out a publish."""
