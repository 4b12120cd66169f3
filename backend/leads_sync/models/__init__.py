from .field_mapping import FieldMapping
from .field_cache import BitrixFieldCache
from .lead import Lead
from .reconciliation_job import ReconciliationJob, JobStatus, JobStage, TERMINAL_STATUSES

__all__ = [
    "FieldMapping",
    "BitrixFieldCache",
    "Lead",
    "ReconciliationJob",
    "JobStatus",
    "JobStage",
    "TERMINAL_STATUSES",
]
