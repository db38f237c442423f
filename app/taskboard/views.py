"""
Generic admin CRUD views.

An ``AdminResource`` describes one model (columns, search fields, filters, form,
permission codenames). ``register_resource`` mounts list/create/edit/delete/bulk
views for it on a Blueprint, each wrapped in the matching permission guard:

    /<name>/              ListView      <app>.view_<model>
    /<name>/create        CreateView    <app>.add_<model>
    /<name>/edit/<id>     UpdateView    <app>.change_<model>
    /<name>/delete/<id>   DeleteView    <app>.delete_<model>
    /<name>/action        ActionView    <app>.delete_<model>
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from flask.views import View
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from app.taskboard.audit import record_event
from app.taskboard.db import db_session, is_db_id
from app.taskboard.rbac import permission_required

if TYPE_CHECKING:
    from app.taskboard.forms import ModelForm
    from app.taskboard.models import User


@dataclass(frozen=True)
class Column:
    field: str
    label: str
    sortable: bool = False


def _parse_bool(raw: str) -> bool:
    return raw == "true"


@dataclass(frozen=True)
class AdminFilter:
    """A list filter widget: ``?<parameter_name>=<value>`` where value is one of ``choices``."""

    label: str
    parameter_name: str
    choices: tuple[tuple[str, str], ...]  # (value, label)
    field: str | None = None
    convert: Callable[[str], Any] = str

    @classmethod
    def boolean(cls, label: str, parameter_name: str, field: str | None = None) -> "AdminFilter":
        return cls(label, parameter_name, (("true", "Yes"), ("false", "No")), field, _parse_bool)

    def apply(self, query: Query, model: type, raw: str) -> Query:
        if raw not in {value for value, _ in self.choices}:
            return query
        column = getattr(model, self.field or self.parameter_name)
        return query.filter(column == self.convert(raw))


@dataclass(frozen=True)
class Page:
    items: list[Any]
    page: int
    per_page: int
    total: int

    @property
    def num_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.num_pages


def parse_page(raw: str | None) -> int:
    try:
        page = int(raw or "1")
    except ValueError:
        return 1
    return max(page, 1)


def paginate(query: Query, page: int, per_page: int) -> Page:
    total = query.order_by(None).count()
    num_pages = (total + per_page - 1) // per_page
    page = min(max(page, 1), max(num_pages, 1))
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return Page(items=items, page=page, per_page=per_page, total=total)


def parse_id_list(values: list[str]) -> list[int]:
    ids: list[int] = []
    for raw in values:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            continue
        if is_db_id(value):
            ids.append(value)
    return sorted(set(ids))


class AdminResource:
    """Configuration and hooks for one admin-managed model (cf. Django's ModelAdmin)."""

    name: ClassVar[str]  # URL segment, e.g. "users"
    model: ClassVar[type]
    form_class: ClassVar[type["ModelForm"]]
    app_label: ClassVar[str] = "auth"
    model_name: ClassVar[str]  # used in permission codenames, e.g. "user"
    verbose_name: ClassVar[str]
    verbose_name_plural: ClassVar[str]

    list_template: ClassVar[str] = "admin/list.html"
    form_template: ClassVar[str]

    columns: ClassVar[tuple[Column, ...]] = ()
    search_fields: ClassVar[tuple[str, ...]] = ()
    filters: ClassVar[tuple[AdminFilter, ...]] = ()
    default_sort: ClassVar[str] = "id"
    default_dir: ClassVar[str] = "desc"
    per_page: ClassVar[int | None] = None

    endpoint_prefix: str = ""

    def perm(self, action: str) -> str:
        return f"{self.app_label}.{action}_{self.model_name}"

    def endpoint(self, kind: str) -> str:
        return f"{self.endpoint_prefix}_{kind}"

    def url(self, kind: str, **values: Any) -> str:
        return url_for(self.endpoint(kind), **values)

    def list_params(self, params: Mapping[str, str]) -> dict[str, str]:
        """The query string the list page understands; anything else is dropped."""
        known = {"q", "sort", "dir", "page", *(f.parameter_name for f in self.filters)}
        return {k: v for k, v in params.items() if k in known and v}

    @property
    def sortable_fields(self) -> tuple[str, ...]:
        return tuple(c.field for c in self.columns if c.sortable)

    def page_size(self) -> int:
        return self.per_page or int(current_app.config.get("ADMIN_PAGE_SIZE") or 10)

    # Query hooks

    def get_queryset(self, s: Session) -> Query:
        return s.query(self.model)

    def filter_queryset(self, query: Query, q: str) -> Query:
        like = f"%{q}%"
        return query.filter(or_(*(getattr(self.model, f).ilike(like) for f in self.search_fields)))

    def apply_filters(self, query: Query, params: Mapping[str, str]) -> tuple[Query, list[dict[str, Any]]]:
        widgets = []
        for f in self.filters:
            current = (params.get(f.parameter_name) or "").strip()
            if current:
                query = f.apply(query, self.model, current)
            widgets.append(
                {
                    "label": f.label,
                    "parameter_name": f.parameter_name,
                    "choices": f.choices,
                    "current_value": current,
                }
            )
        return query, widgets

    def apply_sorting(self, query: Query, sort: str | None, direction: str | None) -> tuple[Query, str, str]:
        sort_col = (sort or "").strip()
        if sort_col not in self.sortable_fields:
            sort_col = self.default_sort
        direction = (direction or self.default_dir).strip().lower()
        if direction not in ("asc", "desc"):
            direction = self.default_dir
        column = getattr(self.model, sort_col)
        id_column = getattr(self.model, "id")
        if direction == "asc":
            return query.order_by(column.asc(), id_column.asc()), sort_col, direction
        return query.order_by(column.desc(), id_column.desc()), sort_col, direction

    # Rendering hooks

    def get_context_data(self, s: Session) -> dict[str, Any]:
        return {}

    def cell(self, obj: Any, field_name: str) -> Any:
        return getattr(obj, field_name)

    def object_label(self, obj: Any) -> str:
        return str(obj.id)

    def delete_denied_reason(self, obj: Any, user: "User") -> str | None:
        return None


@dataclass
class _FormState:
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


class ResourceView(View):
    init_every_request = False

    def __init__(self, resource: AdminResource):
        self.resource = resource

    def base_context(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "base_url": self.resource.url("list"),
            "active_nav": self.resource.name,
        }

    def audit(self, s: Session, action: str, obj: Any, metadata: dict[str, Any] | None = None) -> None:
        record_event(
            s,
            actor=getattr(g, "current_user", None),
            action=f"{self.resource.model_name}.{action}",
            entity_type=self.resource.model.__name__,
            entity_id=str(obj.id),
            metadata=metadata or {"label": self.resource.object_label(obj)},
        )


class ListView(ResourceView):
    """Search → filter → sort → paginate."""

    methods = ["GET"]

    def dispatch_request(self):
        r = self.resource
        s = db_session()
        query = r.get_queryset(s)

        search_query = (request.args.get("q") or "").strip()
        if search_query and r.search_fields:
            query = r.filter_queryset(query, search_query)

        query, admin_filters = r.apply_filters(query, request.args)
        query, sort, direction = r.apply_sorting(query, request.args.get("sort"), request.args.get("dir"))
        page = paginate(query, parse_page(request.args.get("page")), r.page_size())

        def page_url(p: int) -> str:
            args = r.list_params(request.args)
            args["page"] = p
            return r.url("list", **args)

        def sort_url(field_name: str) -> str:
            args = r.list_params(request.args)
            args.pop("page", None)
            args["sort"] = field_name
            args["dir"] = "desc" if (sort == field_name and direction == "asc") else "asc"
            return r.url("list", **args)

        return render_template(
            r.list_template,
            items=page.items,
            page=page,
            search_query=search_query,
            sort=sort,
            dir=direction,
            admin_filters=admin_filters,
            columns=r.columns,
            page_url=page_url,
            sort_url=sort_url,
            **r.get_context_data(s),
            **self.base_context(),
        )


class _FormView(ResourceView):
    methods = ["GET", "POST"]

    def render_form(self, s: Session, state: _FormState, obj: Any = None):
        r = self.resource
        return render_template(
            r.form_template,
            form=state.data,
            errors=state.errors,
            object=obj,
            is_edit=obj is not None,
            **r.get_context_data(s),
            **self.base_context(),
        )


class CreateView(_FormView):
    def dispatch_request(self):
        r = self.resource
        s = db_session()
        if request.method == "GET":
            return self.render_form(s, _FormState(data=r.form_class.initial(None)))

        form = r.form_class.from_request(request.form)
        if not form.is_valid(s):
            return self.render_form(s, _FormState(data=form.data, errors=form.errors))

        obj = form.save(s)
        s.flush()
        self.audit(s, "create", obj)
        s.commit()
        current_app.logger.info("%s created id=%s by=%s", r.model.__name__, obj.id, getattr(g.current_user, "id", None))
        flash(f'Created {r.verbose_name} "{r.object_label(obj)}".', "success")
        return redirect(r.url("list"))


class UpdateView(_FormView):
    def get_object(self, s: Session, object_id: int) -> Any:
        obj = s.get(self.resource.model, object_id) if is_db_id(object_id) else None
        if obj is None:
            abort(404)
        return obj

    def dispatch_request(self, object_id: int):
        r = self.resource
        s = db_session()
        obj = self.get_object(s, object_id)
        if request.method == "GET":
            return self.render_form(s, _FormState(data=r.form_class.initial(obj)), obj)

        form = r.form_class.from_request(request.form, instance=obj)
        if not form.is_valid(s):
            return self.render_form(s, _FormState(data=form.data, errors=form.errors), obj)

        form.save(s)
        self.audit(s, "update", obj)
        s.commit()
        flash(f'Updated {r.verbose_name} "{r.object_label(obj)}".', "success")
        return redirect(r.url("list"))


class DeleteView(ResourceView):
    methods = ["POST"]

    def dispatch_request(self, object_id: int):
        r = self.resource
        s = db_session()
        obj = s.get(r.model, object_id) if is_db_id(object_id) else None
        if obj is None:
            abort(404)
        reason = r.delete_denied_reason(obj, g.current_user)
        if reason:
            flash(reason, "danger")
            return redirect(r.url("list"))
        label = r.object_label(obj)
        self.audit(s, "delete", obj)
        s.delete(obj)
        s.commit()
        flash(f'Deleted {r.verbose_name} "{label}".', "success")
        return redirect(r.url("list"))


class ActionView(ResourceView):
    """Bulk actions posted from the list page's checkboxes."""

    methods = ["POST"]

    def dispatch_request(self):
        r = self.resource
        action = (request.form.get("action") or "").strip()
        if action != "delete_selected":
            flash("Unknown action.", "warning")
            return redirect(r.url("list"))

        ids = parse_id_list(request.form.getlist("selected_ids"))
        if not ids:
            flash(f"No {r.verbose_name_plural} selected.", "warning")
            return redirect(r.url("list"))

        s = db_session()
        deleted = 0
        for obj in s.query(r.model).filter(r.model.id.in_(ids)).all():
            reason = r.delete_denied_reason(obj, g.current_user)
            if reason:
                flash(reason, "warning")
                continue
            self.audit(s, "delete", obj)
            s.delete(obj)
            deleted += 1
        s.commit()
        flash(f"Deleted {deleted} {r.verbose_name_plural}.", "success")
        return redirect(r.url("list"))


def register_resource(bp: Blueprint, resource: AdminResource) -> AdminResource:
    resource.endpoint_prefix = f"{bp.name}.{resource.name}"
    base = f"/{resource.name}"

    def _rule(path: str, kind: str, view_cls: type[ResourceView], action: str) -> None:
        endpoint = f"{resource.name}_{kind}"
        view = view_cls.as_view(endpoint, resource)
        bp.add_url_rule(
            f"{base}{path}",
            endpoint=endpoint,
            view_func=permission_required(resource.perm(action))(view),
            methods=view_cls.methods,
        )

    _rule("/", "list", ListView, "view")
    _rule("/create", "create", CreateView, "add")
    _rule("/edit/<int:object_id>", "edit", UpdateView, "change")
    _rule("/delete/<int:object_id>", "delete", DeleteView, "delete")
    _rule("/action", "action", ActionView, "delete")
    return resource
