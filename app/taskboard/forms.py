from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy.orm import Session
from werkzeug.datastructures import MultiDict

from app.taskboard.views import parse_id_list

_TRUTHY = frozenset({"1", "on", "true", "yes", "y"})


class ModelForm:
    """
    Request-form → model mapping used by the generic create/update views.

    Subclasses list their fields, implement ``validate`` (returning error
    messages) and ``save`` (creating or updating ``self.instance``).
    """

    text_fields: ClassVar[tuple[str, ...]] = ()
    raw_fields: ClassVar[tuple[str, ...]] = ()  # not stripped (passwords)
    bool_fields: ClassVar[tuple[str, ...]] = ()
    id_list_fields: ClassVar[tuple[str, ...]] = ()
    defaults: ClassVar[dict[str, Any]] = {}

    def __init__(self, data: dict[str, Any], instance: Any = None):
        self.data = data
        self.instance = instance
        self.errors: list[str] = []

    @classmethod
    def from_request(cls, form: MultiDict, instance: Any = None) -> "ModelForm":
        data: dict[str, Any] = {}
        for name in cls.text_fields:
            data[name] = (form.get(name) or "").strip()
        for name in cls.raw_fields:
            data[name] = form.get(name) or ""
        for name in cls.bool_fields:
            data[name] = (form.get(name) or "").strip().lower() in _TRUTHY
        for name in cls.id_list_fields:
            data[name] = parse_id_list(form.getlist(name))
        return cls(data, instance=instance)

    @classmethod
    def initial(cls, instance: Any) -> dict[str, Any]:
        """Form values for a GET: defaults for a new object, current values for an existing one."""
        data: dict[str, Any] = {name: "" for name in cls.text_fields + cls.raw_fields}
        data.update({name: False for name in cls.bool_fields})
        data.update({name: [] for name in cls.id_list_fields})
        data.update(cls.defaults)
        if instance is not None:
            data.update(cls.initial_from_instance(instance))
        return data

    @classmethod
    def initial_from_instance(cls, instance: Any) -> dict[str, Any]:
        return {name: getattr(instance, name) for name in cls.text_fields + cls.bool_fields}

    def is_valid(self, s: Session) -> bool:
        self.errors = self.validate(s)
        return not self.errors

    def validate(self, s: Session) -> list[str]:
        return []

    def save(self, s: Session) -> Any:
        raise NotImplementedError


def load_by_ids(s: Session, model: type, ids: list[int]) -> list[Any]:
    """Fetch the rows a many-to-many checkbox list points at; unknown ids are dropped."""
    if not ids:
        return []
    return s.query(model).filter(model.id.in_(ids)).order_by(model.id.asc()).all()
