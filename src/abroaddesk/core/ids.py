from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def new_asset_id() -> str:
    """Generate a media asset id safe to use as a file name and storage path."""
    return uuid.uuid4().hex
