from routers import categories, orders, products, users

__all__ = ["categories", "orders", "products", "users"]
