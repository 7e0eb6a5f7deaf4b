from checkerloc.api.locate import CheckerboardLocation, locate_checkerboard
from checkerloc.api.white_point import WhitePoint, estimate_white_point, estimate_white_point_coordinates

__all__ = [
    "CheckerboardLocation",
    "locate_checkerboard",
    "WhitePoint",
    "estimate_white_point",
    "estimate_white_point_coordinates",
]
