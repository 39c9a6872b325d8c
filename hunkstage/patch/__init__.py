from .builder import HunkSelection, build_hunk_patch, build_patch

__all__ = [
    "HunkSelection",
    "build_hunk_patch",
    "build_patch",
]
