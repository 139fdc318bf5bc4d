# src/common/localization.py
"""
Локализация текстов уведомлений.
Переводы хранятся в config/lang_dict.json: {KEY: {lang: text}}.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any


FALLBACK_LANGUAGE = "en"


def get_lang_dict_path() -> Path:
    """Возвращает путь к файлу локализации."""
    return Path(__file__).parent.parent.parent / "config" / "lang_dict.json"


@lru_cache()
def load_lang_dict() -> dict[str, dict[str, str]]:
    """
    Загружает словарь переводов (кэшируется).

    Returns:
        Словарь {ключ: {язык: текст}}
    """
    lang_path = get_lang_dict_path()
    if not lang_path.exists():
        raise FileNotFoundError(f"Файл локализации не найден: {lang_path}")

    with open(lang_path, "r", encoding="utf-8") as f:
        return json.load(f)


def get_text(
    key: str,
    lang: str = FALLBACK_LANGUAGE,
    default: str | None = None,
    **kwargs: Any,
) -> str:
    """
    Возвращает локализованный текст по ключу.

    Порядок выбора: запрошенный язык, затем английский, затем любой
    доступный перевод. Неизвестный ключ даёт default или "[KEY]".

    Example:
        >>> get_text("PROVIDER_MATCH", "en", tag="tractor_tillage", compensation=500)
        "New request nearby: tractor_tillage, offered 500"
    """
    try:
        translations = load_lang_dict().get(key)
    except FileNotFoundError:
        translations = None

    if not translations:
        return default if default else f"[{key}]"

    text = (
        translations.get(lang)
        or translations.get(FALLBACK_LANGUAGE)
        or next(iter(translations.values()), f"[{key}]")
    )

    if kwargs:
        try:
            text = text.format(**kwargs)
        except (KeyError, IndexError):
            pass

    return text


def get_available_languages() -> list[str]:
    """Возвращает языки, присутствующие в первом ключе словаря."""
    try:
        first = next(iter(load_lang_dict().values()), {})
        return list(first.keys())
    except FileNotFoundError:
        return [FALLBACK_LANGUAGE]


def validate_lang_dict() -> list[str]:
    """
    Проверяет, что у каждого ключа есть перевод на все языки.

    Returns:
        Список ошибок (пустой, если всё в порядке)
    """
    try:
        lang_dict = load_lang_dict()
    except FileNotFoundError as e:
        return [str(e)]

    languages = set(get_available_languages())
    errors = []

    for key, translations in lang_dict.items():
        if not isinstance(translations, dict):
            errors.append(f"Ключ '{key}' имеет неверный формат")
            continue

        missing = languages - set(translations.keys())
        if missing:
            errors.append(f"Ключ '{key}' не имеет перевода для языков: {sorted(missing)}")

    return errors
