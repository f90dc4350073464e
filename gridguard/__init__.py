"""
GridGuard - capital-preservation protection cascade and adaptive grid engine.
"""

__version__ = "0.1.0"
