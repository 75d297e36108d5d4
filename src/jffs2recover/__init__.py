"""
jffs2recover - JFFS2 forensic recovery
Rebuilds directory trees, timelines and file histories from raw JFFS2 flash dumps
"""

__version__ = "1.0.0"

from .core.jffs2_parser import EmptyImageError, Jffs2Parser

__all__ = ["Jffs2Parser", "EmptyImageError", "__version__"]
