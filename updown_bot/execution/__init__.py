from .gateway import OrderGateway, share_size

__all__ = ["OrderGateway", "share_size"]
