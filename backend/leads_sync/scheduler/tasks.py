from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from leads_sync.config import settings
from leads_sync.exceptions import JobConflictError
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.job_controller import get_job_controller
import logging
import asyncio

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def daily_reconciliation_task():
    """Задача ежедневной сверки лидов за сегодня"""
    try:
        logger.info("Запуск ежедневной сверки лидов")
        controller = get_job_controller()
        status = asyncio.run(controller.run(JobFilters()))
        logger.info(f"Ежедневная сверка завершена со статусом {status.value if status else None}")
    except JobConflictError as e:
        logger.warning(f"Ежедневная сверка пропущена: {e}")
    except asyncio.CancelledError:
        logger.warning("Ежедневная сверка принудительно прервана оператором")
    except Exception as e:
        logger.error(f"Критическая ошибка при ежедневной сверке: {e}", exc_info=True)


def stalled_jobs_sweep_task():
    """Задача поиска зависших джобов"""
    try:
        stalled = get_job_controller().stalled_jobs()
        for job in stalled:
            logger.warning(
                f"Джоб {job.id} завис: этап {job.stage.value if job.stage else None}, "
                f"последний heartbeat {job.last_heartbeat_at}"
            )
    except Exception as e:
        logger.error(f"Ошибка при поиске зависших джобов: {e}", exc_info=True)


def start_scheduler():
    """Запустить планировщик задач"""
    if not settings.scheduler_enabled:
        logger.info("Планировщик отключен в настройках")
        return
    
    # Парсим время ежедневной сверки
    sync_time = settings.daily_sync_time.split(':')
    hour = int(sync_time[0])
    minute = int(sync_time[1]) if len(sync_time) > 1 else 0
    
    scheduler.add_job(
        daily_reconciliation_task,
        trigger=CronTrigger(hour=hour, minute=minute, timezone=settings.local_timezone),
        id='daily_reconciliation',
        name='Ежедневная сверка лидов',
        replace_existing=True
    )
    scheduler.add_job(
        stalled_jobs_sweep_task,
        trigger=IntervalTrigger(minutes=settings.stall_sweep_minutes),
        id='stalled_jobs_sweep',
        name='Поиск зависших джобов',
        replace_existing=True
    )
    
    scheduler.start()
    logger.info(f"Планировщик запущен. Ежедневная сверка в {settings.daily_sync_time}")


def stop_scheduler():
    """Остановить планировщик задач"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Планировщик остановлен")
