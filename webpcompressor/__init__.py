"""Recompress animated WebP files frame by frame with the webpmux and cwebp tools."""

__version__ = "2.0.0"