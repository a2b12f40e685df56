"""
Generic list query builder.

Turns a raw query-string dict into a SQLAlchemy select with search, exact
filters, sorting, pagination and a response projection. Filter and sort keys
are resolved through a per-resource allow-list, so clients can only reach
columns that have been exposed explicitly.

Usage:
    builder = (
        QueryBuilder(Parcel, PARCEL_QUERY_FIELDS, request_query, [Parcel.sender_id == user_id])
        .search(["trackingId", "receiver.name"])
        .filter()
        .sort()
        .paginate()
        .fields()
    )
    items = await builder.execute(db)
    meta = await builder.get_meta(db)
"""

import copy
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Boolean, DateTime, Enum, Float, Integer, Numeric, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.config import settings
from courier.app.core.exceptions import ValidationFailedError
from courier.app.models.parcel import Parcel
from courier.app.models.user import User

RESERVED_QUERY_KEYS = frozenset({"search", "searchTerm", "sort", "limit", "page", "fields"})
DATE_RANGE_KEYS = {"startDate": "start", "endDate": "end"}
DEFAULT_SORT = "-createdAt"


@dataclass(frozen=True)
class QueryField:
    """A public query name bound to a column."""
    column: Any
    normalize: Optional[Callable[[str], str]] = None


def _lower(value: str) -> str:
    return value.lower()


PARCEL_QUERY_FIELDS: Mapping[str, QueryField] = {
    "trackingId": QueryField(Parcel.tracking_id),
    "sender": QueryField(Parcel.sender_id),
    "status": QueryField(Parcel.current_status),
    "currentStatus": QueryField(Parcel.current_status),
    "receiver.name": QueryField(Parcel.receiver_name),
    "receiver.email": QueryField(Parcel.receiver_email, _lower),
    "receiverEmail": QueryField(Parcel.receiver_email, _lower),
    "receiver.phone": QueryField(Parcel.receiver_phone),
    "parcelDetails.type": QueryField(Parcel.parcel_type),
    "parcelDetails.weight": QueryField(Parcel.weight_kg),
    "parcelDetails.description": QueryField(Parcel.description),
    "deliveryInfo.urgency": QueryField(Parcel.urgency),
    "urgency": QueryField(Parcel.urgency),
    "isBlocked": QueryField(Parcel.is_blocked),
    "isCancelled": QueryField(Parcel.is_cancelled),
    "deliveryPersonnel": QueryField(Parcel.delivery_personnel_id),
    "pricing.totalFee": QueryField(Parcel.total_fee),
    "createdAt": QueryField(Parcel.created_at),
    "updatedAt": QueryField(Parcel.updated_at),
    "deliveredAt": QueryField(Parcel.delivered_at),
}

USER_QUERY_FIELDS: Mapping[str, QueryField] = {
    "name": QueryField(User.name),
    "email": QueryField(User.email, _lower),
    "phone": QueryField(User.phone),
    "role": QueryField(User.role),
    "isBlocked": QueryField(User.is_blocked),
    "createdAt": QueryField(User.created_at),
    "updatedAt": QueryField(User.updated_at),
}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def coerce_value(key: str, query_field: QueryField, value: Any) -> Any:
    """Convert a raw query-string value to the Python type of its column."""
    if not isinstance(value, str):
        return value

    column_type = query_field.column.expression.type
    try:
        if isinstance(column_type, Enum) and column_type.enum_class is not None:
            enum_class = column_type.enum_class
            try:
                return enum_class(value.lower())
            except ValueError:
                return enum_class[value.upper()]
        if isinstance(column_type, Boolean):
            lowered = value.lower()
            if lowered in ("true", "1"):
                return True
            if lowered in ("false", "0"):
                return False
            raise ValueError(value)
        if isinstance(column_type, Integer):
            return int(value)
        if isinstance(column_type, (Float, Numeric)):
            return float(value)
        if isinstance(column_type, DateTime):
            return _parse_datetime(value)
    except (KeyError, ValueError):
        raise ValidationFailedError(f"Invalid value '{value}' for filter '{key}'")

    if query_field.normalize:
        return query_field.normalize(value)
    return value


class QueryBuilder:
    """
    Chainable list query.

    The steps may be called in any order; build() always composes
    search, filter, sort, pagination in that order.
    """

    def __init__(
        self,
        model: Any,
        resource_fields: Mapping[str, QueryField],
        raw_query: Optional[Mapping[str, Any]] = None,
        base_criteria: Optional[Sequence[Any]] = None
    ):
        self.model = model
        self.resource_fields = resource_fields
        self.raw_query = dict(raw_query or {})
        self.base_criteria = list(base_criteria or [])

        self._search_criteria: List[Any] = []
        self._filter_criteria: List[Any] = []
        self._order_by: List[Any] = []
        self._paginated = False
        self._include: List[str] = []
        self._exclude: List[str] = []

        self.page = 1
        self.limit = settings.default_page_size

    def _resolve(self, key: str) -> QueryField:
        query_field = self.resource_fields.get(key)
        if query_field is None:
            raise ValidationFailedError(f"Unknown query field '{key}'")
        return query_field

    def search(self, searchable_fields: Sequence[str]) -> "QueryBuilder":
        term = self.raw_query.get("search") or self.raw_query.get("searchTerm")
        term = term.strip() if isinstance(term, str) else term
        self._search_criteria = []
        if term:
            pattern = f"%{_escape_like(str(term))}%"
            self._search_criteria.append(or_(*[
                self._resolve(name).column.ilike(pattern, escape="\\")
                for name in searchable_fields
            ]))
        return self

    def filter(self) -> "QueryBuilder":
        self._filter_criteria = []
        for key, value in self.raw_query.items():
            if key in RESERVED_QUERY_KEYS or value is None or value == "":
                continue

            if key in DATE_RANGE_KEYS:
                created_at = self._resolve("createdAt")
                bound = coerce_value(key, created_at, value)
                if DATE_RANGE_KEYS[key] == "start":
                    self._filter_criteria.append(created_at.column >= bound)
                else:
                    self._filter_criteria.append(created_at.column <= bound)
                continue

            query_field = self._resolve(key)
            self._filter_criteria.append(query_field.column == coerce_value(key, query_field, value))
        return self

    def sort(self) -> "QueryBuilder":
        expression = self.raw_query.get("sort") or DEFAULT_SORT
        self._order_by = []
        first_descending = None

        for part in str(expression).split(","):
            part = part.strip()
            if not part:
                continue
            descending = part.startswith("-")
            column = self._resolve(part.lstrip("-")).column
            self._order_by.append(column.desc() if descending else column.asc())
            if first_descending is None:
                first_descending = descending

        # Stable pages when the sort key has duplicates
        self._order_by.append(self.model.id.desc() if first_descending else self.model.id.asc())
        return self

    def paginate(self) -> "QueryBuilder":
        self.page = _positive_int(self.raw_query.get("page"), 1)
        self.limit = min(
            _positive_int(self.raw_query.get("limit"), settings.default_page_size),
            settings.max_page_size
        )
        self._paginated = True
        return self

    def fields(self) -> "QueryBuilder":
        raw_fields = self.raw_query.get("fields") or ""
        self._include, self._exclude = [], []
        for name in str(raw_fields).split(","):
            name = name.strip()
            if not name:
                continue
            if name.startswith("-"):
                self._exclude.append(name[1:])
            else:
                self._include.append(name)
        return self

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def criteria(self) -> List[Any]:
        """Every WHERE criterion shared by the page and count queries."""
        return self.base_criteria + self._search_criteria + self._filter_criteria

    def build(self):
        query = select(self.model).where(*self.criteria)
        if self._order_by:
            query = query.order_by(*self._order_by)
        if self._paginated:
            query = query.offset(self.skip).limit(self.limit)
        return query

    def count_query(self):
        return select(func.count()).select_from(self.model).where(*self.criteria)

    async def execute(self, db: AsyncSession) -> List[Any]:
        result = await db.execute(self.build())
        return list(result.unique().scalars().all())

    async def get_meta(self, db: AsyncSession) -> Dict[str, int]:
        total = (await db.execute(self.count_query())).scalar_one()
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPage": math.ceil(total / self.limit) if self.limit else 0,
        }

    def project(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the fields projection to a serialised record.

        Dotted names such as pricing.totalFee address keys inside nested
        objects. Paths missing from the record are skipped.
        """
        if self._include:
            projected = {"id": record["id"]} if "id" in record else {}
            for name in self._include:
                _copy_path(record, projected, name.split("."))
            return projected
        if self._exclude:
            projected = copy.deepcopy(record)
            for name in self._exclude:
                _drop_path(projected, name.split("."))
            return projected
        return record


def _copy_path(source: Dict[str, Any], target: Dict[str, Any], path: List[str]) -> None:
    key, rest = path[0], path[1:]
    if not isinstance(source, dict) or key not in source:
        return
    if not rest:
        target[key] = source[key]
    elif isinstance(source[key], dict):
        _copy_path(source[key], target.setdefault(key, {}), rest)


def _drop_path(record: Dict[str, Any], path: List[str]) -> None:
    key, rest = path[0], path[1:]
    if not isinstance(record, dict) or key not in record:
        return
    if rest:
        _drop_path(record[key], rest)
    else:
        del record[key]
