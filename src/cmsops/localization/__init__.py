"""Localization module for cmsops.

Translates or copies content records into another language while keeping
their relative order, and runs field values through label transforms.
"""

from cmsops.localization.engine import Action, LocalizationEngine
from cmsops.localization.transforms import (
    LabelTransform,
    StripWhitespaceTransform,
    TransformContext,
    TransformRegistry,
    TranslateLabelTransform,
    default_registry,
)

__all__ = [
    "Action",
    "LocalizationEngine",
    "LabelTransform",
    "TransformContext",
    "TransformRegistry",
    "TranslateLabelTransform",
    "StripWhitespaceTransform",
    "default_registry",
]
