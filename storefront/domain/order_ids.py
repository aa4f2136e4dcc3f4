from typing import Optional

DEFAULT_FLOOR = 100000


def next_order_number(latest: Optional[str], floor: int = DEFAULT_FLOOR) -> str:
    """Next number after `latest`, never below `floor`, padded to the floor's width."""
    width = len(str(floor))
    next_number = floor
    if latest is not None:
        try:
            next_number = max(int(latest) + 1, floor)
        except ValueError:
            # Legacy or test identifiers restart the sequence at the floor
            pass
    return str(next_number).zfill(width)
