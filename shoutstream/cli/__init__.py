"""
Command line interface
"""

from .stream_cli import main

__all__ = ['main']
