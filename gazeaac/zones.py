"""
Horizontal interaction zones: the screen split into left, center and right bands.
"""
from typing import Tuple

from .types import Zone


def zone_edges(screen_width: float, ratios: Tuple[float, float, float]) -> Tuple[float, float]:
    """
    X positions where left meets center and center meets right.

    Args:
        screen_width: Width of the interaction surface in pixels
        ratios: Relative widths of the three bands, e.g. (347, 677, 347)

    Returns:
        (left_edge, right_edge) in pixels
    """
    total = sum(ratios)
    left_edge = screen_width * ratios[0] / total
    right_edge = screen_width * (ratios[0] + ratios[1]) / total
    return left_edge, right_edge


def zone_centers(screen_width: float, ratios: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """Center x of each band, left to right."""
    left_edge, right_edge = zone_edges(screen_width, ratios)
    return (left_edge / 2, (left_edge + right_edge) / 2, (right_edge + screen_width) / 2)


def zone_for_x(x_px: float, screen_width: float, ratios: Tuple[float, float, float]) -> Zone:
    """Band containing the given x position."""
    left_edge, right_edge = zone_edges(screen_width, ratios)
    if x_px < left_edge:
        return "left"
    if x_px > right_edge:
        return "right"
    return "center"
