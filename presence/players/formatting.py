"""Human readable renderings of player statistics."""

AVATAR_URL_TEMPLATE = "https://mc-heads.net/avatar/{name}/48"


def format_duration(ms: int) -> str:
    """Render a duration in ms with its two most significant units.

    Examples: ``5s``, ``2m``, ``1h 1m``, ``1d 1h``.
    """
    seconds = max(ms, 0) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def avatar_url(display_name: str) -> str:
    return AVATAR_URL_TEMPLATE.format(name=display_name)
