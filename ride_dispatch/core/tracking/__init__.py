"""
Трекинг исполнителя: гео-расчёты и приём точек.
"""
