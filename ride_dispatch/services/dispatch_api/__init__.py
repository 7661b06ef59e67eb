# ride_dispatch/services/dispatch_api/__init__.py
"""
HTTP API диспетчеризации заявок.

Обеспечивает:
- Создание и принятие заявок
- Смену статусов, отмену и оценку
- Приём трека исполнителя
- Флаг присутствия исполнителя
"""
