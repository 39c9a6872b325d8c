from .models import BlameLine
from .parser import format_epoch, parse_blame_porcelain

__all__ = [
    "BlameLine",
    "format_epoch",
    "parse_blame_porcelain",
]
