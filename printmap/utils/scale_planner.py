"""Print scale planning and building height normalization."""

import math

from .models import ScalePlan

MIN_PRINT_HEIGHT_MM = 0.8
MAX_PRINT_HEIGHT_MM = 8.0

# Preview exaggeration: the model's longest side maps to this many display units
DISPLAY_SCALE_DIVISOR = 50.0


def plan_scale(width, depth, target_size_mm):
    """
    Compute the horizontal print scale for a region.

    Args:
        width: Window width in meters
        depth: Window depth in meters
        target_size_mm: Printed size of the longest side

    Returns:
        ScalePlan: ``horizontal_scale`` is meters per printed millimeter;
        ``display_vertical_scale`` is for preview only and never reaches export.

    Raises:
        ValueError: if the target size is not a positive finite number
    """
    try:
        target = float(target_size_mm)
    except (TypeError, ValueError):
        raise ValueError(f"Model size must be a number, got {target_size_mm!r}") from None
    if not (math.isfinite(target) and target > 0):
        raise ValueError(f"Model size must be positive and finite, got {target_size_mm!r}")

    horizontal_max = max(width, depth)
    return ScalePlan(
        horizontal_scale=horizontal_max / target,
        display_vertical_scale=horizontal_max / DISPLAY_SCALE_DIVISOR,
        target_size_mm=target,
    )


def building_print_height(real_height_m, stats,
                          min_print_mm=MIN_PRINT_HEIGHT_MM,
                          max_print_mm=MAX_PRINT_HEIGHT_MM):
    """
    Map a real building height onto the printable height range.

    Heights are interpolated linearly between the shortest and tallest
    building in the region and clamped to [min_print_mm, max_print_mm].
    A degenerate range (no buildings, or all the same height) always maps
    to ``min_print_mm``.
    """
    low = stats.min_building_height_m
    high = stats.max_building_height_m
    if not high > low:
        return min_print_mm

    height_ratio = (real_height_m - low) / (high - low)
    print_mm = min_print_mm + height_ratio * (max_print_mm - min_print_mm)
    return max(min_print_mm, min(max_print_mm, print_mm))
