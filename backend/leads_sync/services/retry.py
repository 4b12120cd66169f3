from typing import Any, Awaitable, Callable, Optional
from leads_sync.config import settings
from leads_sync.exceptions import LeadsSyncError, RemoteApiError
import asyncio
import logging

logger = logging.getLogger(__name__)


async def call_with_retries(
    func: Callable[..., Awaitable[Any]],
    *args,
    description: str = "запрос к Bitrix24",
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    timeout: Optional[float] = None,
    **kwargs
) -> Any:
    """
    Выполнить асинхронный вызов с таймаутом и экспоненциальной задержкой между попытками

    Доменные ошибки (LeadsSyncError) не повторяются и пробрасываются сразу.

    Raises:
        RemoteApiError: если все попытки исчерпаны
    """
    attempts = attempts or settings.remote_max_attempts
    base_delay = settings.remote_retry_base_delay if base_delay is None else base_delay
    timeout = timeout or settings.remote_timeout_seconds

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout)
        except LeadsSyncError:
            raise
        except Exception as e:
            if attempt >= attempts:
                logger.error(f"{description}: попытки исчерпаны ({attempts}), последняя ошибка: {e}")
                raise RemoteApiError(f"{description}: {e}") from e
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                f"{description}: ошибка (попытка {attempt}/{attempts}): {e}. Повтор через {delay:.1f} c"
            )
            await asyncio.sleep(delay)
