"""
Тесты локального хранилища лидов.
"""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from leads_sync.models import Lead
from leads_sync.schemas.reconciliation_job import JobFilters
from leads_sync.services.lead_store import SYNC_SOURCE_MISSING, LeadRepository

BRT = ZoneInfo("America/Sao_Paulo")


def test_upsert_creates_and_updates_lead(session_factory, db) -> None:
    repository = LeadRepository(session_factory)
    criado = datetime(2024, 3, 5, 14, 0, tzinfo=timezone.utc)

    repository.upsert(10, {"name": "Maria", "scouter": "Ana", "criado": criado, "age": 34}, raw={"ID": "10"})
    repository.upsert(10, {"name": "Maria Silva", "criado": criado, "age": 35})

    lead = db.query(Lead).filter(Lead.id == 10).one()
    assert lead.name == "Maria Silva"
    assert lead.scouter == "Ana"
    assert lead.data["age"] == 35
    assert lead.data["criado"] == criado.isoformat()
    assert lead.raw == {"ID": "10"}
    assert lead.sync_source == SYNC_SOURCE_MISSING
    assert lead.last_sync_at is not None


def test_list_ids_filters_by_scouter_and_inclusive_portal_days(session_factory) -> None:
    repository = LeadRepository(session_factory)
    repository.upsert(1, {"scouter": "Ana Paula", "criado": datetime(2024, 3, 1, 0, 0, tzinfo=BRT)})
    repository.upsert(2, {"scouter": "Ana Paula", "criado": datetime(2024, 3, 5, 23, 59, tzinfo=BRT)})
    repository.upsert(3, {"scouter": "Ana Paula", "criado": datetime(2024, 3, 6, 0, 0, tzinfo=BRT)})
    repository.upsert(4, {"scouter": "Bruno", "criado": datetime(2024, 3, 3, 12, 0, tzinfo=BRT)})
    repository.upsert(5, {"scouter": "Ana Paula", "criado": datetime(2024, 2, 29, 23, 59, tzinfo=BRT)})

    ids = repository.list_ids(JobFilters(scouter_name="ana", date_from=date(2024, 3, 1), date_to=date(2024, 3, 5)))

    assert sorted(ids) == [1, 2]
    assert sorted(repository.list_ids(JobFilters())) == [1, 2, 3, 4, 5]


def test_evening_lead_belongs_to_its_local_day(session_factory) -> None:
    repository = LeadRepository(session_factory)
    # 22:00 в Сан-Паулу - это уже 01:00 следующего дня по UTC
    repository.upsert(7, {"criado": datetime(2024, 1, 15, 22, 0, tzinfo=BRT)})

    assert repository.list_ids(JobFilters(date_from=date(2024, 1, 15), date_to=date(2024, 1, 15))) == [7]
    assert repository.list_ids(JobFilters(date_from=date(2024, 1, 16), date_to=date(2024, 1, 16))) == []


def test_creation_date_falls_back_to_remote_date_create(session_factory, db) -> None:
    repository = LeadRepository(session_factory)

    repository.upsert(8, {"name": "Joana"}, raw={"ID": "8", "DATE_CREATE": "2024-01-15T21:30:00-03:00"})

    lead = db.query(Lead).filter(Lead.id == 8).one()
    assert lead.criado is not None
    assert repository.list_ids(JobFilters(date_from=date(2024, 1, 15), date_to=date(2024, 1, 15))) == [8]


def test_mapped_creation_date_wins_over_date_create(session_factory) -> None:
    repository = LeadRepository(session_factory)

    repository.upsert(
        9,
        {"criado": datetime(2024, 1, 10, 12, 0, tzinfo=BRT)},
        raw={"ID": "9", "DATE_CREATE": "2024-01-15T12:00:00-03:00"}
    )

    assert repository.list_ids(JobFilters(date_from=date(2024, 1, 10), date_to=date(2024, 1, 10))) == [9]
    assert repository.list_ids(JobFilters(date_from=date(2024, 1, 15), date_to=date(2024, 1, 15))) == []


def test_unparseable_date_create_leaves_creation_date_empty(session_factory, db) -> None:
    repository = LeadRepository(session_factory)

    repository.upsert(11, {"name": "Rita"}, raw={"ID": "11", "DATE_CREATE": "ontem"})

    assert db.query(Lead).filter(Lead.id == 11).one().criado is None
