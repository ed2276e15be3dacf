from context42.storage.repository import StyleGuideRepository

__all__ = ["StyleGuideRepository"]
