from .errors import ShapeError, NetworkNotInitializedError

__all__ = ['ShapeError', 'NetworkNotInitializedError']
