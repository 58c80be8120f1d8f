from __future__ import annotations


__all__ = ["tag", "version", "released"]


# When tagging a release, set `released = True`.
# After tagging a release, set `released = False` and increment `tag`.

released = False

tag = version = "1.0"
