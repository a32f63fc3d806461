"""
Validation Utilities
Input validation for node ids, channel ids and list parameters
"""
import re
from typing import Callable, List, Optional


class ValidationError(Exception):
    """Custom validation error"""
    pass


NODE_ID_PATTERN = re.compile(r"^(02|03)[0-9a-f]{64}$")
SHORT_CHANNEL_ID_PATTERN = re.compile(r"^\d+x\d+x\d+$")
MAX_ALIAS_LENGTH = 64


def validate_node_id(node_id: Optional[str]) -> str:
    """
    Validate a node public key (33-byte compressed key, hex encoded)

    Returns:
        The normalized (lower-case, stripped) node id
    """
    if not node_id or not node_id.strip():
        raise ValidationError("node_id is required")

    normalized = node_id.strip().lower()
    if not NODE_ID_PATTERN.match(normalized):
        raise ValidationError(f"Invalid node_id format: {node_id[:80]}")
    return normalized


def validate_short_channel_id(short_channel_id: Optional[str]) -> str:
    """Validate a short channel id of the form <block>x<tx>x<output>"""
    if not short_channel_id or not short_channel_id.strip():
        raise ValidationError("short_channel_id is required")

    normalized = short_channel_id.strip()
    if not SHORT_CHANNEL_ID_PATTERN.match(normalized):
        raise ValidationError(
            f"Invalid short_channel_id format: {normalized[:80]} (expected <block>x<tx>x<output>)"
        )
    return normalized


def validate_alias(alias: Optional[str]) -> str:
    if not alias or not alias.strip():
        raise ValidationError("alias is required")
    if len(alias) > MAX_ALIAS_LENGTH:
        raise ValidationError(f"alias must be at most {MAX_ALIAS_LENGTH} characters")
    return alias


def validate_limit(limit: Optional[int], maximum: int, name: str = "limit") -> int:
    if limit is None:
        raise ValidationError(f"{name} is required")
    if limit < 1 or limit > maximum:
        raise ValidationError(f"{name} must be between 1 and {maximum}")
    return limit


def parse_id_list(
    raw: Optional[str],
    validator: Callable[[str], str],
    name: str,
    max_items: int = 200,
) -> List[str]:
    """
    Parse a comma-separated id list, validating and de-duplicating each item
    while keeping first-seen order.
    """
    if not raw or not raw.strip():
        raise ValidationError(f"{name} is required")

    items: List[str] = []
    for part in raw.split(","):
        if not part.strip():
            continue
        value = validator(part)
        if value not in items:
            items.append(value)

    if not items:
        raise ValidationError(f"{name} is required")
    if len(items) > max_items:
        raise ValidationError(f"{name} accepts at most {max_items} ids")
    return items
