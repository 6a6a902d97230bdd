from .main import main_router

__all__ = ["main_router"]
