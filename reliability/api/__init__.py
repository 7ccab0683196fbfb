# API package
from reliability.api.main import create_app

__all__ = ["create_app"]
