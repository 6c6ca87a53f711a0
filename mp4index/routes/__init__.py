from .index import index_router

__all__ = ["index_router"]
