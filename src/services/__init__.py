# src/services/__init__.py
"""
HTTP-сервисы приложения.

Сервисы:
- matching_api: публикация заявок, матчинг, жизненный цикл, кластеры и бригады
"""
