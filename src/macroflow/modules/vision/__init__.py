from .template import (
    TemplateMatch,
    find_template,
)
from .utils import (
    ImageLike,
    Region,
    crop,
    load_image,
    parse_region,
    to_gray,
)

__all__ = [
    "TemplateMatch",
    "find_template",
    "ImageLike",
    "Region",
    "crop",
    "load_image",
    "parse_region",
    "to_gray",
]
