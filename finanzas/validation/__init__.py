"""Input validation package."""

from finanzas.validation.validator import (
    TransactionValidator,
    ValidationError,
    build_card,
    build_wishlist_item,
    get_user_friendly_summary,
    validate_profile_update,
)

__all__ = [
    "TransactionValidator",
    "ValidationError",
    "build_card",
    "build_wishlist_item",
    "get_user_friendly_summary",
    "validate_profile_update",
]
