"""Transformation catalogue, aspect-ratio presets and credit constants."""

from typing import Any, Dict

CREDIT_FEE = -1
DEFAULT_IMAGE_DIMENSION = 1000
IMAGE_COLLECTION = "images"
ACCOUNT_COLLECTION = "accounts"

TRANSFORMATION_TYPES: Dict[str, Dict[str, Any]] = {
    "restore": {
        "type": "restore",
        "title": "Restore Image",
        "subtitle": "Refine images by removing noise and imperfections",
        "config": {"restore": True},
    },
    "removeBackground": {
        "type": "removeBackground",
        "title": "Background Remove",
        "subtitle": "Removes the background of the image using AI",
        "config": {"removeBackground": True},
    },
    "fill": {
        "type": "fill",
        "title": "Generative Fill",
        "subtitle": "Enhance an image's dimensions using AI outpainting",
        "config": {"fillBackground": True},
    },
    "remove": {
        "type": "remove",
        "title": "Object Remove",
        "subtitle": "Identify and eliminate objects from images",
        "config": {"remove": {"prompt": "", "removeShadow": True, "multiple": True}},
    },
    "recolor": {
        "type": "recolor",
        "title": "Object Recolor",
        "subtitle": "Identify and recolor objects from the image",
        "config": {"recolor": {"prompt": "", "to": "", "multiple": True}},
    },
}

ASPECT_RATIO_OPTIONS: Dict[str, Dict[str, Any]] = {
    "1:1": {"aspect_ratio": "1:1", "label": "Square (1:1)", "width": 1000, "height": 1000},
    "3:4": {"aspect_ratio": "3:4", "label": "Standard Portrait (3:4)", "width": 1000, "height": 1334},
    "9:16": {"aspect_ratio": "9:16", "label": "Phone Portrait (9:16)", "width": 1000, "height": 1778},
}
