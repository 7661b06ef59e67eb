"""
Транспортные адаптеры: HTTP API и WebSocket шлюз.
"""
