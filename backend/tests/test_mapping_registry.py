"""
Тесты реестра правил маппинга.
"""
from leads_sync.services.mapping_registry import MappingRegistry, MappingRule
from leads_sync.services.transform_engine import Direction

from fakes import add_mapping


def _rule(rule_id, source, target, **kwargs) -> MappingRule:
    return MappingRule(id=rule_id, source_field=source, target_field=target, **kwargs)


def test_inactive_and_hidden_rules_are_excluded() -> None:
    registry = MappingRegistry([
        _rule(1, "NAME", "name"),
        _rule(2, "PHONE", "phone", active=False),
        _rule(3, "EMAIL", "email", hidden=True),
    ])

    assert [rule.id for rule in registry] == [1]


def test_order_is_priority_then_target_field_then_id() -> None:
    registry = MappingRegistry([
        _rule(5, "B", "zeta", priority=1),
        _rule(4, "A", "alpha", priority=1),
        _rule(3, "C", "alpha", priority=1),
        _rule(9, "D", "omega", priority=0),
    ])

    assert [rule.id for rule in registry] == [9, 3, 4, 5]


def test_apply_continues_after_field_error() -> None:
    registry = MappingRegistry([
        _rule(1, "AGE", "age", transform_function="toNumber", target_type="integer"),
        _rule(2, "NAME", "name", transform_function="toString"),
    ])

    mapped = registry.apply(Direction.REMOTE_TO_LOCAL, {"AGE": "abc", "NAME": "Maria"})

    assert mapped.fields == {"name": "Maria"}
    assert mapped.unresolved == ["age"]
    assert len(mapped.errors) == 1
    assert mapped.source_snapshot == {"AGE": "abc", "NAME": "Maria"}


def test_same_target_uses_first_non_empty_value() -> None:
    registry = MappingRegistry([
        _rule(1, "UF_CRM_PHONE_MAIN", "phone", priority=0),
        _rule(2, "UF_CRM_PHONE_ALT", "phone", priority=1),
    ])

    empty_main = registry.apply(Direction.REMOTE_TO_LOCAL, {"UF_CRM_PHONE_ALT": "+55 11 9999"})
    both = registry.apply(Direction.REMOTE_TO_LOCAL, {"UF_CRM_PHONE_MAIN": "+55 11 1111", "UF_CRM_PHONE_ALT": "+55 11 9999"})

    assert empty_main.fields["phone"] == "+55 11 9999"
    assert both.fields["phone"] == "+55 11 1111"


def test_later_rule_resolves_earlier_failure() -> None:
    registry = MappingRegistry([
        _rule(1, "UF_CRM_AGE_TEXT", "age", transform_function="toNumber", priority=0),
        _rule(2, "UF_CRM_AGE", "age", transform_function="toNumber", priority=1),
    ])

    mapped = registry.apply(Direction.REMOTE_TO_LOCAL, {"UF_CRM_AGE_TEXT": "trinta", "UF_CRM_AGE": "30"})

    assert mapped.fields["age"] == 30
    assert mapped.unresolved == []
    assert len(mapped.errors) == 1


def test_local_to_remote_reads_target_and_writes_source() -> None:
    registry = MappingRegistry([
        _rule(1, "UF_CRM_ACTIVE", "active", transform_function="toBoolean", target_type="boolean"),
    ])

    mapped = registry.apply(Direction.LOCAL_TO_REMOTE, {"active": True})

    assert mapped.fields == {"UF_CRM_ACTIVE": "Y"}


def test_unmapped_fields() -> None:
    registry = MappingRegistry([_rule(1, "NAME", "name")])

    assert registry.unmapped_fields(Direction.REMOTE_TO_LOCAL, {"NAME": "x", "PHONE": "y"}) == ["PHONE"]
    assert registry.unmapped_fields(Direction.LOCAL_TO_REMOTE, {"name": "x", "phone": "y"}) == ["phone"]


def test_lookup_by_source_and_target() -> None:
    registry = MappingRegistry([
        _rule(1, "NAME", "name", priority=1),
        _rule(2, "NAME", "full_name", priority=0),
    ])

    assert [rule.id for rule in registry.by_source("NAME")] == [2, 1]
    assert registry.by_target("name").id == 1
    assert registry.by_target("missing") is None


def test_from_db_loads_only_active_visible_rules(db) -> None:
    add_mapping(db, "NAME", "name", transform_function="toString", priority=2)
    add_mapping(db, "UF_CRM_AGE", "age", transform_function="toNumber", target_type="integer", priority=1)
    add_mapping(db, "PHONE", "phone", active=False)
    add_mapping(db, "EMAIL", "email", hidden=True)

    registry = MappingRegistry.from_db(db)

    assert [rule.target_field for rule in registry] == ["age", "name"]
