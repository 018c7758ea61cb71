"""
SMS Micro-Coaching Platform
Blueprint registry.
"""


def parse_id(value):
    """Return ``value`` as a positive int, or None when it is not one.

    Path ids are taken as strings so a malformed id answers 400 instead of
    the router's 404.
    """
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
