"""
Coarse-to-fine search for the transaction boundary before a timestamp.

Stages:
- Bracketer: histogram bounds -> [min, max] key bracket around the target
- ForwardProbe: first row in the bracket that reaches the target
- BoundaryResolver: the row just before it, with its xmin
- XidSearch: runs the three in order and returns a SearchResult
"""

from .bracketer import Bracketer, select_bracket
from .pipeline import SearchState, XidSearch
from .probe import ForwardProbe
from .resolver import BoundaryResolver

__all__ = [
    "Bracketer",
    "select_bracket",
    "ForwardProbe",
    "BoundaryResolver",
    "XidSearch",
    "SearchState",
]
