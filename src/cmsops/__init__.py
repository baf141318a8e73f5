"""cmsops - localization and upload maintenance for a content site."""

__version__ = "0.3.0"
