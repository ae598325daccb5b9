"""
Slug persistence
"""

from .slug_storage import SlugStorage, generate_slug

__all__ = ['SlugStorage', 'generate_slug']
