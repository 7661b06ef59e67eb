"""
Диспетчеризация: принятие заявок, рассылка событий и публичный сервис.
"""
