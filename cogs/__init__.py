"""
Cogs package for the YouTube queue music bot
Contains all Discord cogs (command groups)
"""

# Import cogs for easier access
from .music import Music
from .favorites import Favorites
from .info import Info

__all__ = [
    'Music',
    'Favorites',
    'Info'
]
