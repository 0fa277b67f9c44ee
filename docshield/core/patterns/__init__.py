"""Injection phrase library for DocShield.

Provides the built-in phrase catalogue and custom phrase loading.
"""

from docshield.core.patterns.injection_phrases import (
    BUILTIN_PHRASES,
    load_phrases,
    normalise_phrases,
)

__all__ = [
    "BUILTIN_PHRASES",
    "load_phrases",
    "normalise_phrases",
]
