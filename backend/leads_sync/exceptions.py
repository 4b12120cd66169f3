"""Доменные исключения сервиса синхронизации лидов"""


class LeadsSyncError(Exception):
    """Базовое исключение сервиса"""


class JobNotFoundError(LeadsSyncError):
    """Джоб сверки не найден"""

    def __init__(self, job_id: str):
        super().__init__(f"Джоб {job_id} не найден")
        self.job_id = job_id


class JobActionNotAllowedError(LeadsSyncError):
    """Действие оператора недопустимо в текущем состоянии джоба"""

    def __init__(self, job_id: str, action: str, reason: str):
        super().__init__(f"Действие {action} недоступно для джоба {job_id}: {reason}")
        self.job_id = job_id
        self.action = action
        self.reason = reason


class JobConflictError(LeadsSyncError):
    """Уже запущен джоб с пересекающимися фильтрами"""

    def __init__(self, conflicting_job_id: str):
        super().__init__(f"Уже выполняется джоб {conflicting_job_id} с пересекающимися фильтрами")
        self.conflicting_job_id = conflicting_job_id


class RemoteApiError(LeadsSyncError):
    """Bitrix24 не ответил после всех повторных попыток"""


class ScouterNotFoundError(LeadsSyncError):
    """Скаутер не найден в смарт-процессе Bitrix24"""

    def __init__(self, scouter_name: str):
        super().__init__(f'Скаутер "{scouter_name}" не найден в Bitrix24')
        self.scouter_name = scouter_name
