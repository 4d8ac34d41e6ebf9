"""Review ledger service."""

from .ledger import submit_review, review_targets, reviews_for_user, rating_summary

__all__ = [
    "submit_review",
    "review_targets",
    "reviews_for_user",
    "rating_summary",
]
