import uuid


def new_reference(prefix: str) -> str:
    """Reference number for a movement group, e.g. ``SCAN-3F9A0C1B7D2E4A55``.

    Random rather than clock-derived so concurrent bulk operations never collide.
    """
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"
