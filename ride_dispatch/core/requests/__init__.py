# ride_dispatch/core/requests/__init__.py
"""
Заявки: модели, хранилище, конечный автомат статусов.
"""
