#Purpose: Half-up rounding for scores and display figures.
#Python's round() sends .5 to the even neighbour (round(12.5) == 12);
#scores shown to donors and organizations round .5 up instead.

import math


def round_half_up(value: float) -> int:
    """round_half_up(12.5) == 13, round_half_up(-0.5) == 0."""
    return int(math.floor(value + 0.5))
