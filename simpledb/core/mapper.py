from __future__ import annotations

import dataclasses
import re
import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Mapping, Sequence, Type, TypeVar, get_origin, get_type_hints

from simpledb.core.coercion import coerceValue
from simpledb.errors import MappingError

T = TypeVar("T")

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def toSnakeCase(name: str) -> str:
    """createdDate -> created_date, isBlind -> is_blind."""
    return _CAMEL_BOUNDARY_RE.sub(r"_\1", name).lower()


@dataclass(frozen=True)
class FieldSpec:
    name: str
    declared: Any
    init: bool = True
    required: bool = False


@dataclass(frozen=True)
class TypeSchema:
    """
    Назначение:
        Явная схема целевого типа: упорядоченный список (имя поля, семантический тип).
    Инварианты/гарантии:
        - Строится один раз на тип и далее только читается.
    """

    target: type
    fields: tuple[FieldSpec, ...]
    is_dataclass: bool = False
    _by_name: dict[str, FieldSpec] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, FieldSpec] = {}
        for spec in self.fields:
            index.setdefault(spec.name, spec)
        for spec in self.fields:
            index.setdefault(toSnakeCase(spec.name), spec)
        object.__setattr__(self, "_by_name", index)

    def lookup(self, column: str) -> FieldSpec | None:
        spec = self._by_name.get(column)
        if spec is None:
            spec = self._by_name.get(toSnakeCase(column))
        return spec


def _isClassVar(hint: Any) -> bool:
    return hint is ClassVar or get_origin(hint) is ClassVar


def deriveSchema(target: type) -> TypeSchema:
    """
    Назначение:
        Строит TypeSchema по аннотациям типа и его предков.

    Алгоритм:
        - typing.get_type_hints собирает аннотации по всему MRO (поиск поля в предках).
        - Для dataclass порядок и признаки init/required берутся из dataclasses.fields.
        - Для обычных классов учитываются аннотированные атрибуты, кроме ClassVar.
    """
    if not isinstance(target, type):
        raise MappingError(f"Mapping target must be a class, got {target!r}")
    try:
        hints = get_type_hints(target)
    except (NameError, TypeError) as exc:
        raise MappingError(f"Cannot resolve field annotations of {target.__name__}: {exc}") from exc

    if dataclasses.is_dataclass(target):
        specs = []
        for f in dataclasses.fields(target):
            required = f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
            specs.append(FieldSpec(name=f.name, declared=hints.get(f.name, f.type), init=f.init, required=required))
        return TypeSchema(target=target, fields=tuple(specs), is_dataclass=True)

    specs = [FieldSpec(name=name, declared=hint) for name, hint in hints.items() if not _isClassVar(hint)]
    return TypeSchema(target=target, fields=tuple(specs), is_dataclass=False)


def instanceSchema(target: type, instance: Any) -> TypeSchema:
    """
    Назначение:
        Схема класса без аннотаций по атрибутам, которые выставил его конструктор без аргументов.

    Алгоритм:
        - Тип поля берётся из текущего значения атрибута; None -> значение колонки без приведения.
        - Атрибуты с префиксом "_" не считаются полями.
    """
    specs = [
        FieldSpec(name=name, declared=Any if value is None else type(value))
        for name, value in getattr(instance, "__dict__", {}).items()
        if not name.startswith("_")
    ]
    return TypeSchema(target=target, fields=tuple(specs), is_dataclass=False)


class RowMapper:
    """
    Назначение/ответственность:
        Преобразует Row (имя колонки -> значение) в экземпляр целевого типа.
    Взаимодействия:
        - Схемы типов кэшируются (реестр дескрипторов типов), доступ потокобезопасен.
        - Приведение значений делает coerceValue.
    Ограничения:
        - dataclass создаётся именованными аргументами; отсутствие обязательного поля -> MappingError.
        - Прочие типы обязаны иметь конструктор без аргументов, поля присваиваются атрибутами.
        - Класс без аннотаций и без register() получает поля из атрибутов нового экземпляра.
        - Колонки без одноимённого поля (точно или в snake_case) игнорируются.
    """

    def __init__(self) -> None:
        self._schemas: dict[type, TypeSchema] = {}
        self._lock = threading.Lock()

    def register(self, target: type, fields: Sequence[tuple[str, Any]]) -> TypeSchema:
        """
        Назначение:
            Явно регистрирует схему для типа (например, без аннотаций).
        """
        if not isinstance(target, type):
            raise MappingError(f"Mapping target must be a class, got {target!r}")
        isDataclass = dataclasses.is_dataclass(target)
        derived: dict[str, FieldSpec] = {}
        if isDataclass:
            derived = {spec.name: spec for spec in deriveSchema(target).fields}
        specs = []
        for name, declared in fields:
            base = derived.get(name)
            if base is not None:
                specs.append(dataclasses.replace(base, declared=declared))
            else:
                specs.append(FieldSpec(name=name, declared=declared, init=not isDataclass))
        schema = TypeSchema(target=target, fields=tuple(specs), is_dataclass=isDataclass)
        with self._lock:
            self._schemas[target] = schema
        return schema

    def schema_for(self, target: type) -> TypeSchema:
        with self._lock:
            schema = self._schemas.get(target)
        if schema is not None:
            return schema
        schema = deriveSchema(target)
        with self._lock:
            return self._schemas.setdefault(target, schema)

    def map(self, row: Mapping[str, Any], target: Type[T]) -> T:
        schema = self.schema_for(target)
        if schema.is_dataclass:
            return self._buildDataclass(schema, self._convertRow(row, schema, target))

        instance = self._newInstance(target)
        if not schema.fields:
            schema = instanceSchema(target, instance)
        for name, value in self._convertRow(row, schema, target).items():
            self._assign(instance, name, value)
        return instance

    def _convertRow(self, row: Mapping[str, Any], schema: TypeSchema, target: type) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for column, raw in row.items():
            spec = schema.lookup(column)
            if spec is None or spec.name in values:
                continue
            try:
                values[spec.name] = coerceValue(raw, spec.declared)
            except MappingError as exc:
                raise MappingError(
                    f"Column '{column}' -> {target.__name__}.{spec.name}: {exc.message}",
                    details={**exc.details, "column": column, "field": spec.name, "target": target.__name__},
                ) from exc
        return values

    def map_rows(self, rows: Iterable[Mapping[str, Any]], target: Type[T]) -> list[T]:
        return [self.map(row, target) for row in rows]

    def _buildDataclass(self, schema: TypeSchema, values: dict[str, Any]) -> Any:
        target = schema.target
        initKwargs = {spec.name: values[spec.name] for spec in schema.fields if spec.init and spec.name in values}
        missing = [spec.name for spec in schema.fields if spec.required and spec.name not in initKwargs]
        if missing:
            raise MappingError(
                f"Cannot construct {target.__name__}: no column for required field(s) {', '.join(missing)}",
                details={"target": target.__name__, "missing": missing},
            )
        try:
            instance = target(**initKwargs)
        except TypeError as exc:
            raise MappingError(f"Cannot construct {target.__name__}: {exc}") from exc
        for spec in schema.fields:
            if not spec.init and spec.name in values:
                self._assign(instance, spec.name, values[spec.name])
        return instance

    def _newInstance(self, target: type) -> Any:
        try:
            return target()
        except TypeError as exc:
            raise MappingError(
                f"Cannot construct {target.__name__}: no public no-argument initializer",
                details={"target": target.__name__},
            ) from exc

    def _assign(self, instance: Any, name: str, value: Any) -> None:
        try:
            setattr(instance, name, value)
        except AttributeError as exc:
            raise MappingError(f"Cannot assign field {type(instance).__name__}.{name}: {exc}") from exc


defaultMapper = RowMapper()


def map_row(row: Mapping[str, Any], target: Type[T]) -> T:
    return defaultMapper.map(row, target)
