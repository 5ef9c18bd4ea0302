# API module - REST router
from .endpoints import router

__all__ = ["router"]
