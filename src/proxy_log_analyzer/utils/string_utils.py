from typing import Dict


def truncate(text: str, max_length: int, suffix: str = '...', word_boundary: bool = True) -> str:
    """Truncate text at specified length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add to truncated text
        word_boundary: Whether to truncate at word boundary

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    if not word_boundary:
        return text[:max_length - len(suffix)] + suffix

    end = max_length - len(suffix)
    while end > 0 and not text[end].isspace():
        end -= 1
    return text[:end].rstrip() + suffix


def format_time_ago(delta: float, precision: int = 1) -> str:
    """Format an elapsed number of seconds as a relative display string.

    Args:
        delta: Elapsed seconds (negative values are treated as "just now")
        precision: Number of units to show

    Returns:
        String such as "3h ago" or "2d 4h ago"
    """
    units = [
        (86400, 'd'),
        (3600, 'h'),
        (60, 'm'),
        (1, 's'),
    ]

    remaining = int(delta)
    if remaining < 1:
        return "just now"

    parts = []
    for value, short_name in units:
        if remaining >= value:
            count = remaining // value
            remaining %= value
            parts.append(f"{count}{short_name}")

            if len(parts) >= precision:
                break

    return ' '.join(parts) + " ago"


def render_template(template: str, variables: Dict[str, object]) -> str:
    """Substitute ``{{name}}`` placeholders in a template.

    Unknown placeholders are left untouched.
    """
    for key, value in variables.items():
        template = template.replace(f"{{{{{key}}}}}", str(value))
    return template
