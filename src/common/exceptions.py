# src/common/exceptions.py
"""
Исключения доменного уровня.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """
    Ошибка валидации, исправимая клиентом.

    Выбрасывается до любой мутации состояния.
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        """
        Args:
            reason: Машиночитаемый код причины
            message: Человекочитаемое описание
        """
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class NotFoundError(LookupError):
    """Сущность не найдена."""

    def __init__(self, entity: str, entity_id: str | int) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} не найден")
