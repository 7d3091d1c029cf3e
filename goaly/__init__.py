"""
Goaly - goal tracking with local-first storage and remote sync.

Goals are ranked by motivation, urgency and deadline proximity, the top N
stay active, and the whole dataset can be reconciled with a single remote
JSON document through a three-way merge.
"""

from .core import Goaly

try:
    from importlib.metadata import version

    __version__ = version("goaly")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Goaly"]
