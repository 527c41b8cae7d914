from datetime import date


def today() -> date:
    """Current calendar date used for the active-reservation cut-off."""
    return date.today()


def get_today() -> date:
    """FastAPI dependency wrapper around :func:`today` (overridable in tests)."""
    return today()
