from checkerloc import config
from checkerloc.api import CheckerboardLocation, estimate_white_point, estimate_white_point_coordinates, locate_checkerboard
from checkerloc.core.geometry import Similarity2DTransform
from checkerloc.target.checkerboard import CheckerboardModel, CheckerboardSpec, generate_checkerboard_model

__all__ = [
    "config",
    "CheckerboardLocation",
    "CheckerboardModel",
    "CheckerboardSpec",
    "Similarity2DTransform",
    "estimate_white_point",
    "estimate_white_point_coordinates",
    "generate_checkerboard_model",
    "locate_checkerboard",
]
