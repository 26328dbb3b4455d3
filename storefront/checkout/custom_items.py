"""Validation for products that carry extra per-item data.

Products tag themselves with a ``custom_class``; items for those products are
checked by the validator registered under that tag. Standard products have no
tag and no extra checks.
"""

from typing import Callable, Optional

from storefront.db.models import OrderItem

SUPPORTER_TAG = "supporter-tag"
USERNAME_CHANGE = "username-change"

MAX_SUPPORTER_TAG_MONTHS = 12 * 8
MAX_USERNAME_LENGTH = 15

Validator = Callable[[OrderItem], list[str]]


def validate_supporter_tag(item: OrderItem) -> list[str]:
    data = item.extra_data or {}
    errors = []

    target_id = data.get("target_id")
    if not isinstance(target_id, int) or target_id < 1:
        errors.append("Supporter tag must be gifted to an existing user.")

    duration = data.get("duration")
    if not isinstance(duration, int) or not 1 <= duration <= MAX_SUPPORTER_TAG_MONTHS:
        errors.append(f"Supporter tag duration must be between 1 and {MAX_SUPPORTER_TAG_MONTHS} months.")

    return errors


def validate_username_change(item: OrderItem) -> list[str]:
    username = (item.extra_data or {}).get("username")
    if not isinstance(username, str) or not username.strip():
        return ["A new username is required."]
    if len(username) > MAX_USERNAME_LENGTH:
        return [f"Username may not be longer than {MAX_USERNAME_LENGTH} characters."]
    return []


VALIDATORS: dict[str, Validator] = {
    SUPPORTER_TAG: validate_supporter_tag,
    USERNAME_CHANGE: validate_username_change,
}


def custom_validation_errors(item: OrderItem) -> Optional[list[str]]:
    """Errors from the product's custom validator, or None for standard products."""
    if item.product is None or item.product.custom_class is None:
        return None
    validator = VALIDATORS.get(item.product.custom_class)
    if validator is None:
        return None
    return validator(item)
