# ride_dispatch/core/__init__.py
"""
Доменный слой: хранилище заявок, жизненный цикл, принятие,
рассылка событий, присутствие исполнителей и трекинг.
"""
