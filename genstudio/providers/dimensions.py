"""Output dimension lookup by aspect ratio."""

from typing import Optional, Tuple

# Gemini 2.5 Flash Image output sizes
IMAGE_DIMENSIONS = {
    "1:1": (1024, 1024),
    "2:3": (832, 1248),
    "3:2": (1248, 832),
    "3:4": (864, 1184),
    "4:3": (1184, 864),
    "4:5": (896, 1152),
    "5:4": (1152, 896),
    "9:16": (768, 1344),
    "16:9": (1344, 768),
    "21:9": (1536, 672),
}

DEFAULT_IMAGE_DIMENSIONS = (1024, 1024)


def image_dimensions(aspect_ratio: Optional[str]) -> Tuple[int, int]:
    return IMAGE_DIMENSIONS.get(aspect_ratio or "1:1", DEFAULT_IMAGE_DIMENSIONS)


def video_dimensions(aspect_ratio: Optional[str], resolution: Optional[int]) -> Tuple[int, int]:
    """(width, height) for a video at the given ratio and 720/1080 resolution."""
    aspect_ratio = aspect_ratio or "16:9"
    resolution = resolution or 720
    if aspect_ratio == "16:9":
        return (1920, 1080) if resolution == 1080 else (1280, 720)
    if aspect_ratio == "9:16":
        return (1080, 1920) if resolution == 1080 else (720, 1280)
    if aspect_ratio == "1:1":
        return resolution, resolution
    try:
        w_ratio, h_ratio = (float(part) for part in aspect_ratio.split(":"))
        ratio = w_ratio / h_ratio
    except (ValueError, ZeroDivisionError):
        return (1920, 1080) if resolution == 1080 else (1280, 720)
    if ratio > 1:
        return resolution, round(resolution / ratio)
    return round(resolution * ratio), resolution
