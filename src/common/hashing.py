"""Hashing utilities."""

import hashlib
from collections.abc import Iterable


def generate_cluster_id(item_ids: Iterable[str]) -> str:
    """Generate a deterministic cluster ID from its member item IDs."""
    content = ",".join(sorted(str(item_id) for item_id in item_ids))
    return f"cluster_{hashlib.sha256(content.encode()).hexdigest()[:12]}"
