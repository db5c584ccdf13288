from .admin import create_admin_routes
from .check import create_check_routes

__all__ = ["create_admin_routes", "create_check_routes"]
