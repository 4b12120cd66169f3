"""
Движок преобразования значений полей между Bitrix24 и локальной базой.

Все функции чистые: результат зависит только от аргументов. Ошибки
преобразования не выбрасываются наружу, а возвращаются в TransformOutcome
вместе с маркером UNRESOLVED, чтобы вызывающий код сам решил, пропустить
поле или записать пустое значение.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import enum
import math
import re


class Direction(str, enum.Enum):
    """Направление синхронизации"""
    REMOTE_TO_LOCAL = "bitrix_to_local"
    LOCAL_TO_REMOTE = "local_to_bitrix"


class TransformFunction(str, enum.Enum):
    """Именованные функции преобразования"""
    IDENTITY = "identity"
    TO_NUMBER = "toNumber"
    TO_STRING = "toString"
    TO_BOOLEAN = "toBoolean"
    TO_DATE = "toDate"
    TO_TIMESTAMP = "toTimestamp"


class TargetType(str, enum.Enum):
    """Тип поля в локальной базе"""
    INTEGER = "integer"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"


class _Unresolved:
    """Маркер поля, которое не удалось преобразовать"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<unresolved>"

    def __bool__(self) -> bool:
        return False


UNRESOLVED = _Unresolved()


@dataclass
class TransformOutcome:
    """Результат преобразования одного поля одной записи"""
    value: Any
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.value is not UNRESOLVED


@dataclass(frozen=True)
class ListValue:
    """Значение поля-списка: исходный ID и подпись для отображения"""
    raw: Any
    label: Optional[str]


class TransformValueError(ValueError):
    """Значение нельзя преобразовать выбранной функцией"""


_TRUE_STRINGS = ("Y", "1")
_BR_DATETIME_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})(?:\s+(\d{2}):(\d{2})(?::(\d{2}))?)?$")


def _parse_number(value: Any):
    if isinstance(value, bool):
        raise TransformValueError(f'Не удалось преобразовать "{value}" в число')
    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        # Денежные поля Bitrix24 приходят как "150.00|BRL"
        if "|" in text:
            text = text.split("|", 1)[0].strip()
        if text == "":
            return None
        try:
            number = int(text)
        except ValueError:
            try:
                number = float(text.replace(",", "."))
            except ValueError:
                raise TransformValueError(f'Не удалось преобразовать "{value}" в число')
    if isinstance(number, float) and not math.isfinite(number):
        raise TransformValueError(f'Число "{value}" не является конечным')
    return number


def _stringify(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        match = _BR_DATETIME_RE.match(text)
        if match:
            day, month, year, hour, minute, second = match.groups()
            try:
                parsed = datetime(
                    int(year), int(month), int(day),
                    int(hour or 0), int(minute or 0), int(second or 0)
                )
            except ValueError:
                raise TransformValueError(f"Некорректная дата: {value}")
        else:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                raise TransformValueError(f"Некорректная дата: {value}")
    else:
        raise TransformValueError(f"Некорректная дата: {value}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_boolean(value: Any) -> bool:
    if value is True:
        return True
    if isinstance(value, str):
        return value.strip() in _TRUE_STRINGS
    return False


def _boolean_to_remote(value: Any) -> str:
    if isinstance(value, str):
        return "Y" if _to_boolean(value) or value.strip().lower() == "true" else "N"
    return "Y" if bool(value) else "N"


def _date_to_remote(value: Any) -> str:
    return _parse_timestamp(value).date().isoformat()


def _identity(value: Any) -> Any:
    return value


_HANDLERS: Dict[Tuple[TransformFunction, Direction], Callable[[Any], Any]] = {
    (TransformFunction.IDENTITY, Direction.REMOTE_TO_LOCAL): _identity,
    (TransformFunction.IDENTITY, Direction.LOCAL_TO_REMOTE): _identity,
    (TransformFunction.TO_NUMBER, Direction.REMOTE_TO_LOCAL): _parse_number,
    # Обратное преобразование для числа - строка
    (TransformFunction.TO_NUMBER, Direction.LOCAL_TO_REMOTE): _stringify,
    (TransformFunction.TO_STRING, Direction.REMOTE_TO_LOCAL): _stringify,
    (TransformFunction.TO_STRING, Direction.LOCAL_TO_REMOTE): _stringify,
    (TransformFunction.TO_BOOLEAN, Direction.REMOTE_TO_LOCAL): _to_boolean,
    (TransformFunction.TO_BOOLEAN, Direction.LOCAL_TO_REMOTE): _boolean_to_remote,
    (TransformFunction.TO_DATE, Direction.REMOTE_TO_LOCAL): _parse_timestamp,
    (TransformFunction.TO_DATE, Direction.LOCAL_TO_REMOTE): _date_to_remote,
    (TransformFunction.TO_TIMESTAMP, Direction.REMOTE_TO_LOCAL): _parse_timestamp,
    (TransformFunction.TO_TIMESTAMP, Direction.LOCAL_TO_REMOTE): _date_to_remote,
}


def matches_target_type(value: Any, target_type: TargetType) -> bool:
    """Проверить, соответствует ли значение типу поля в локальной базе"""
    if target_type == TargetType.INTEGER:
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if target_type == TargetType.TEXT:
        return isinstance(value, str)
    if target_type == TargetType.BOOLEAN:
        return isinstance(value, bool)
    if target_type == TargetType.DATE:
        return isinstance(value, (date, datetime))
    return True


def transform(
    direction: Direction,
    function_name: str,
    raw_value: Any,
    target_type: Optional[str] = None,
    field_name: Optional[str] = None
) -> TransformOutcome:
    """
    Преобразовать значение поля

    Args:
        direction: Направление синхронизации
        function_name: Имя функции преобразования (identity, toNumber, ...)
        raw_value: Исходное значение
        target_type: Тип поля в локальной базе; несоответствие дает предупреждение
        field_name: Имя поля для текста сообщений

    Returns:
        TransformOutcome со значением (или UNRESOLVED), предупреждениями и ошибками
    """
    label = field_name or "поле"
    outcome = TransformOutcome(value=raw_value)

    try:
        function = TransformFunction(function_name or TransformFunction.IDENTITY.value)
    except ValueError:
        outcome.value = UNRESOLVED
        outcome.errors.append(f"Неизвестная функция преобразования {function_name} для {label}")
        return outcome

    if raw_value is None:
        return outcome

    handler = _HANDLERS[(function, Direction(direction))]
    try:
        outcome.value = handler(raw_value)
    except TransformValueError as e:
        outcome.value = UNRESOLVED
        outcome.errors.append(f"{e} ({label})")
        return outcome

    if target_type:
        try:
            expected = TargetType(target_type)
        except ValueError:
            outcome.warnings.append(f"Неизвестный тип {target_type} для {label}")
            return outcome
        # Тип локального поля проверяем на той стороне, где значение локальное
        local_value = outcome.value if direction == Direction.REMOTE_TO_LOCAL else raw_value
        if local_value is not None and not matches_target_type(local_value, expected):
            outcome.warnings.append(
                f"Тип значения {type(local_value).__name__} не соответствует типу {expected.value} для {label}"
            )

    return outcome


def resolve_list_value(metadata, field_id: str, raw_value: Any) -> ListValue:
    """
    Получить подпись значения поля-списка, не теряя исходный ID

    Args:
        metadata: Кэш метаданных полей (list_item_label)
        field_id: ID поля в Bitrix24
        raw_value: Исходный ID элемента списка (или список ID для множественных полей)
    """
    if raw_value is None or raw_value == "" or metadata is None:
        return ListValue(raw=raw_value, label=None)

    if isinstance(raw_value, (list, tuple)):
        labels = [metadata.list_item_label(field_id, item) for item in raw_value]
        labels = [item for item in labels if item]
        return ListValue(raw=raw_value, label=", ".join(labels) if labels else None)

    return ListValue(raw=raw_value, label=metadata.list_item_label(field_id, raw_value))
