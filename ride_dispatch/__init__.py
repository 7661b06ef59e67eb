# ride_dispatch/__init__.py
"""
Ride Dispatch: диспетчеризация заявок по требованию.

Создание заявки, рассылка доступным исполнителям, принятие ровно одним
исполнителем, жизненный цикл до завершения или отмены и live-трекинг.
"""

__version__ = "0.3.0"
