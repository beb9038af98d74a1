from .videos import Video

__all__ = ["Video"]
