# API Routes Module
from app.api.routes import billing

__all__ = [
    "billing",
]
