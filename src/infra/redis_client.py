# src/infra/redis_client.py
"""
Клиент Redis для таймеров расширения и блокировок свипов.
"""

from __future__ import annotations

import redis.asyncio as redis

from src.common.logger import get_logger, log_error, log_info
from src.common.constants import TypeMsg

logger = get_logger("redis")

# Удаляет ключ, только если он всё ещё принадлежит владельцу
_RELEASE_LOCK_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisClient:
    """
    Асинхронный клиент Redis.
    Поддерживает:
    - Строковые ключи с TTL
    - Sorted set операции (отложенные действия по времени)
    - Распределённые блокировки (SET NX EX)
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "seva"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        if url is None:
            from src.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = settings.redis.REDIS_NAMESPACE

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self._make_key(key))

    async def set(
        self,
        key: str,
        value: str,
        ttl: int | None = None,
        nx: bool = False,
    ) -> bool:
        """
        Устанавливает значение.

        Args:
            key: Ключ
            value: Значение
            ttl: Время жизни в секундах
            nx: Установить, только если ключа нет

        Returns:
            True если значение записано
        """
        result = await self.client.set(self._make_key(key), value, ex=ttl, nx=nx)
        return bool(result)

    async def delete(self, key: str) -> int:
        """Удаляет ключ."""
        return await self.client.delete(self._make_key(key))

    async def exists(self, key: str) -> bool:
        """Проверяет существование ключа."""
        return await self.client.exists(self._make_key(key)) > 0

    # =========================================================================
    # SORTED SET (отложенные действия)
    # =========================================================================

    async def zadd(self, key: str, member: str, score: float) -> int:
        """Добавляет (или перепланирует) элемент с весом score."""
        return await self.client.zadd(self._make_key(key), {member: score})

    async def zrem(self, key: str, member: str) -> int:
        """
        Удаляет элемент. Возвращает 1 только одному из конкурентов,
        поэтому используется как атомарный захват.
        """
        return await self.client.zrem(self._make_key(key), member)

    async def zscore(self, key: str, member: str) -> float | None:
        """Вес элемента или None."""
        return await self.client.zscore(self._make_key(key), member)

    async def zrangebyscore(
        self,
        key: str,
        max_score: float,
        limit: int = 100,
    ) -> list[str]:
        """Элементы с весом <= max_score (по возрастанию)."""
        return await self.client.zrangebyscore(
            self._make_key(key),
            "-inf",
            max_score,
            start=0,
            num=limit,
        )

    # =========================================================================
    # БЛОКИРОВКИ
    # =========================================================================

    async def acquire_lock(self, key: str, token: str, ttl: int) -> bool:
        """
        Захватывает блокировку (SET NX EX).

        Returns:
            True если блокировка получена
        """
        return await self.set(key, token, ttl=ttl, nx=True)

    async def release_lock(self, key: str, token: str) -> bool:
        """Снимает блокировку, если она принадлежит token."""
        released = await self.client.eval(_RELEASE_LOCK_SCRIPT, 1, self._make_key(key), token)
        return bool(released)

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """Проверяет, отвечает ли Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> None:
    """Инициализирует подключение к Redis по настройкам из конфигурации."""
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    redis_client = get_redis()
    await redis_client.disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
