"""
Order lifecycle helpers split by responsibility.
External callers should keep importing from services.order_lifecycle_service.
"""
