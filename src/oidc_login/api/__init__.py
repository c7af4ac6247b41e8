from .main import create_app
from .router import router

__all__ = ["create_app", "router"]
