# ride_dispatch/services/realtime_ws/__init__.py
"""
Realtime WebSocket Gateway: доставка событий заявок клиентам.

Обеспечивает:
- WebSocket соединения заказчиков и исполнителей
- Пересылку событий из RabbitMQ по личным топикам
- Рассылку открытых заявок исполнителям на линии
"""
