"""Cart package: the cart mutation engine."""
from .service import CartEngine

__all__ = ["CartEngine"]
