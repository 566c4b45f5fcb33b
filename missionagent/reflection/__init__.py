from .reflective_engine import ReflectiveEngine

__all__ = ["ReflectiveEngine"]
