"""
Фоновые воркеры вне основного пути запросов.
"""
