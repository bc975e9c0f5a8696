"""Order persistence: ``IOrderRepository`` and its Django ORM implementation."""
