# src/shared/__init__.py
"""
Общий код HTTP-слоя.

Модули:
- models: общие модели ответов
"""

__all__: list[str] = []
