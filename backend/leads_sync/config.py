from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    """Конфигурация приложения из переменных окружения"""
    
    # Bitrix24
    bitrix24_webhook: Optional[str] = None
    bitrix24_access_token: Optional[str] = None
    
    # Приложение
    app_name: str = "Leads Sync B24"
    debug: bool = False
    log_level: str = "INFO"
    
    # База данных
    database_url: str = "sqlite:///./data/leads_sync.db"
    
    # Планировщик
    scheduler_enabled: bool = True
    daily_sync_time: str = "06:00"
    stall_sweep_minutes: int = 5
    local_timezone: str = "America/Sao_Paulo"
    
    # Джобы сверки
    stall_threshold_seconds: int = 180  # Без heartbeat дольше этого - джоб считается зависшим
    terminate_status: str = "failed"  # Статус принудительно завершенного джоба: failed или cancelled
    import_batch_size: int = 10
    import_concurrency: int = 3
    batch_pause_seconds: float = 0.3
    max_error_details: int = 500
    
    # Лимиты листинга Bitrix24
    max_scan_with_dates: int = 50000
    max_scan_with_scouter: int = 2000
    max_scan_unfiltered: int = 5000
    
    # Повторы запросов к Bitrix24
    remote_max_attempts: int = 3
    remote_retry_base_delay: float = 1.0
    remote_timeout_seconds: float = 30.0
    
    # Смарт-процесс скаутеров в Bitrix24
    scouter_entity_type_id: int = 1096
    scouter_parent_field: str = "PARENT_ID_1096"
    
    # Предпросмотр маппинга
    preview_sample_size: int = 5
    
    # CORS
    cors_origins: Union[str, List[str]] = "http://localhost:3000,http://localhost:5173"
    
    @field_validator('cors_origins')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v
    
    @field_validator('terminate_status')
    @classmethod
    def validate_terminate_status(cls, v):
        if v not in ("failed", "cancelled"):
            raise ValueError("terminate_status должен быть failed или cancelled")
        return v
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()
