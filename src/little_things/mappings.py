"""
Storage boundary field mapping

Remote rows are converted to the canonical models here and nowhere else.
Column names come from the versioned ``field_mappings.yaml`` table; the
value transforms that are not plain renames (memory category <-> tag list,
rating <-> three-level importance) live next to it.
"""
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import yaml

from .models import (
    DEFAULT_CATEGORY,
    PLACEHOLDER,
    AppSettings,
    ClothingSizes,
    ImportantDate,
    Importance,
    Memory,
    PartnerProfile,
    Plan,
    Priority,
    PrivacyMode,
)

logger = logging.getLogger(__name__)

SUPPORTED_VERSION = 3
_EMPTY = (None, "", [], {})


def rating_to_importance(rating: Optional[int]) -> str:
    """Collapse a 1-5 rating to low/medium/high (lossy: 2 -> low, 4 -> high)."""
    if rating and rating >= 4:
        return Importance.HIGH.value
    if rating and rating >= 3:
        return Importance.MEDIUM.value
    return Importance.LOW.value


def importance_to_rating(importance: Optional[str]) -> int:
    if importance == Importance.HIGH.value:
        return 5
    if importance == Importance.MEDIUM.value:
        return 3
    return 1


def _category_to_tags(category: Optional[str]) -> List[str]:
    return [category] if category else []


def _tags_to_category(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else DEFAULT_CATEGORY
    return str(value) if value else DEFAULT_CATEGORY


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class FieldMap:
    """Canonical field -> accepted column names for one table."""

    def __init__(self, table: str, fields: Mapping[str, List[str]]):
        self.table = table
        self.fields = {name: list(columns) for name, columns in fields.items()}

    def column(self, field: str) -> str:
        return self.fields[field][0]

    def read(self, row: Mapping[str, Any], field: str, default: Any = None) -> Any:
        for column in self.fields.get(field, [field]):
            value = row.get(column)
            if value not in _EMPTY:
                return value
        return default

    def write(
        self,
        values: Mapping[str, Any],
        transforms: Optional[Mapping[str, Callable[[Any], Any]]] = None,
    ) -> Dict[str, Any]:
        transforms = transforms or {}
        row: Dict[str, Any] = {}
        for field, value in values.items():
            if field not in self.fields:
                continue
            transform = transforms.get(field)
            row[self.column(field)] = transform(value) if transform else value
        return row


class FieldMappings:
    """Loaded mapping table plus per-entity converters."""

    def __init__(self, data: Mapping[str, Any]):
        version = int(data.get("version", 0))
        if version != SUPPORTED_VERSION:
            raise ValueError(f"unsupported field mapping version: {version}")
        self.version = version
        self.tables: Dict[str, str] = dict(data.get("tables") or {})
        self.memories = FieldMap(self.table("memories"), data["memories"])
        self.partner_profiles = FieldMap(self.table("partner_profiles"), data["partner_profiles"])
        self.plans = FieldMap(self.table("plans"), data["plans"])
        self.app_settings = FieldMap(self.table("app_settings"), data["app_settings"])

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "FieldMappings":
        """Load the mapping table, the packaged one by default."""
        if path is None:
            text = resources.files("little_things").joinpath("field_mappings.yaml").read_text(encoding="utf-8")
        else:
            text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text) or {}
        return cls(data)

    def table(self, name: str) -> str:
        return self.tables.get(name, name)

    # -- memories -----------------------------------------------------------

    def memory_from_row(self, row: Mapping[str, Any]) -> Memory:
        m = self.memories
        return Memory(
            id=str(m.read(row, "id")),
            title=m.read(row, "title", ""),
            description=m.read(row, "description", ""),
            category=_tags_to_category(m.read(row, "category")),
            rating=importance_to_rating(m.read(row, "rating")),
            date=_as_str(m.read(row, "date")),
            created_at=_as_str(m.read(row, "created_at")),
            updated_at=_as_str(m.read(row, "updated_at")),
        )

    def memory_to_row(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        values = {k: v for k, v in values.items() if k not in ("id", "created_at")}
        return self.memories.write(
            values,
            transforms={"category": _category_to_tags, "rating": rating_to_importance},
        )

    # -- partner profile ----------------------------------------------------

    def profile_from_row(self, row: Mapping[str, Any]) -> PartnerProfile:
        p = self.partner_profiles
        birthday = _as_str(p.read(row, "birthday"))
        anniversary = _as_str(p.read(row, "anniversary"))
        important_dates = p.read(row, "important_dates", [])
        if not any(column in row for column in p.fields["important_dates"]):
            # rows written before important_dates had its own column
            important_dates = []
            if birthday:
                important_dates.append(ImportantDate(date=birthday, description="Birthday"))
            if anniversary:
                important_dates.append(ImportantDate(date=anniversary, description="Anniversary"))
        sizes = p.read(row, "sizes") or {}
        return PartnerProfile(
            id=_as_str(p.read(row, "id")),
            name=p.read(row, "name", ""),
            favorite_color=p.read(row, "favorite_color", PLACEHOLDER),
            favorite_food=p.read(row, "favorite_food", PLACEHOLDER),
            favorite_hobbies=list(p.read(row, "favorite_hobbies", [])),
            important_dates=important_dates,
            notes=p.read(row, "notes", ""),
            birthday=birthday,
            anniversary=anniversary,
            love_languages=list(p.read(row, "love_languages", [])),
            favorite_things=p.read(row, "favorite_things"),
            dislikes=p.read(row, "dislikes"),
            sizes=ClothingSizes.model_validate(sizes),
            created_at=_as_str(p.read(row, "created_at")),
            updated_at=_as_str(p.read(row, "updated_at")),
        )

    def profile_to_row(self, profile: PartnerProfile) -> Dict[str, Any]:
        values = profile.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        return self.partner_profiles.write(values)

    # -- plans --------------------------------------------------------------

    def plan_from_row(self, row: Mapping[str, Any]) -> Plan:
        p = self.plans
        priority = p.read(row, "priority", Priority.MEDIUM.value)
        if priority not in {item.value for item in Priority}:
            priority = Priority.MEDIUM.value
        return Plan(
            id=str(p.read(row, "id")),
            title=p.read(row, "title", ""),
            description=p.read(row, "description", "") or "",
            date=_as_str(p.read(row, "date")),
            category=_tags_to_category(p.read(row, "category")),
            priority=priority,
            completed=bool(p.read(row, "completed", False)),
            created_at=_as_str(p.read(row, "created_at")),
            updated_at=_as_str(p.read(row, "updated_at")),
        )

    def plan_to_row(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        values = {k: v for k, v in values.items() if k not in ("id", "created_at")}
        return self.plans.write(values, transforms={"category": _category_to_tags})

    # -- app settings -------------------------------------------------------

    def settings_from_row(self, row: Mapping[str, Any]) -> AppSettings:
        s = self.app_settings
        privacy = s.read(row, "privacy", PrivacyMode.PRIVATE.value)
        if privacy not in {item.value for item in PrivacyMode}:
            privacy = PrivacyMode.PRIVATE.value
        return AppSettings(
            id=_as_str(s.read(row, "id")),
            notifications=bool(s.read(row, "notifications", True)),
            privacy=privacy,
            user_name=s.read(row, "user_name"),
            locale=s.read(row, "locale"),
            currency=s.read(row, "currency"),
            created_at=_as_str(s.read(row, "created_at")),
            updated_at=_as_str(s.read(row, "updated_at")),
        )

    def settings_to_row(self, app_settings: AppSettings) -> Dict[str, Any]:
        values = app_settings.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        return self.app_settings.write(values)


__all__ = [
    "FieldMap",
    "FieldMappings",
    "rating_to_importance",
    "importance_to_rating",
    "SUPPORTED_VERSION",
]
