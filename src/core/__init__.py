# src/core/__init__.py
"""
Доменный слой (Core Domain).
Сборка сервисов: src.core.engine.build_engine.
"""
