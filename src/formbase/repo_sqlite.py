from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from sqlalchemy import create_engine
from sqlalchemy.orm import Query, sessionmaker

from formbase.models import (
    Base,
    ColumnModel,
    DatabaseModel,
    FormModel,
    RowModel,
    SubmissionModel,
)
from formbase.protocols import EntityState, Scope
from formbase.utils import dumps_json, ensure_aware, loads_json


def _aware(value: datetime | None) -> datetime | None:
    return ensure_aware(value) if value is not None else None


def _scoped(query: Query, model: Any, scope: Scope) -> Query:
    query = query.filter(model.user_id == scope.owner_id)
    if scope.state is EntityState.ACTIVE:
        query = query.filter(model.deleted_at.is_(None))
    elif scope.state is EntityState.DELETED:
        query = query.filter(model.deleted_at.is_not(None))
    return query


def _by_deleted(query: Query, model: Any, deleted: bool | None) -> Query:
    if deleted is True:
        return query.filter(model.deleted_at.is_not(None))
    if deleted is False:
        return query.filter(model.deleted_at.is_(None))
    return query


class SQLiteDatabaseRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_databases(self, scope: Scope) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                _scoped(session.query(DatabaseModel), DatabaseModel, scope)
                .order_by(DatabaseModel.created_at.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def list_all_databases(self, deleted: bool | None = None) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = _by_deleted(session.query(DatabaseModel), DatabaseModel, deleted).all()
            return [self._to_dict(row) for row in rows]

    def get_database(self, database_id: str, scope: Scope) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                _scoped(session.query(DatabaseModel), DatabaseModel, scope)
                .filter(DatabaseModel.id == database_id)
                .first()
            )
            return self._to_dict(row) if row else None

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]:
        with self._Session() as session:
            query = _scoped(session.query(DatabaseModel), DatabaseModel, scope).filter(
                DatabaseModel.name.in_(list(names))
            )
            if exclude_id:
                query = query.filter(DatabaseModel.id != exclude_id)
            return [self._to_dict(row) for row in query.all()]

    def create_database(self, database: dict[str, Any]) -> None:
        with self._Session() as session:
            row = DatabaseModel(
                id=database["id"],
                user_id=database["user_id"],
                name=database["name"],
                created_at=database["created_at"],
                updated_at=database["updated_at"],
                deleted_at=database.get("deleted_at"),
            )
            session.add(row)
            session.commit()

    def update_database(self, database_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(DatabaseModel, database_id)
            if not row:
                raise KeyError(database_id)
            for key, value in updates.items():
                setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def set_deleted_at(self, database_ids: list[str], value: datetime | None) -> int:
        if not database_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(DatabaseModel)
                .filter(DatabaseModel.id.in_(database_ids))
                .update({DatabaseModel.deleted_at: value}, synchronize_session=False)
            )
            session.commit()
            return count

    def delete_databases(self, database_ids: list[str]) -> int:
        if not database_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(DatabaseModel)
                .filter(DatabaseModel.id.in_(database_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    @staticmethod
    def _to_dict(row: DatabaseModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "user_id": row.user_id,
            "name": row.name,
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
            "deleted_at": _aware(row.deleted_at),
        }


class SQLiteColumnRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_columns(self, database_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(ColumnModel)
                .filter(ColumnModel.database_id == database_id)
                .order_by(ColumnModel.order.asc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def get_column(self, column_id: str, database_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(ColumnModel)
                .filter(ColumnModel.id == column_id, ColumnModel.database_id == database_id)
                .first()
            )
            return self._to_dict(row) if row else None

    def find_by_name(self, database_id: str, name: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(ColumnModel)
                .filter(ColumnModel.database_id == database_id, ColumnModel.name == name)
                .first()
            )
            return self._to_dict(row) if row else None

    def max_order(self, database_id: str) -> int | None:
        with self._Session() as session:
            row = (
                session.query(ColumnModel)
                .filter(ColumnModel.database_id == database_id)
                .order_by(ColumnModel.order.desc())
                .first()
            )
            return row.order if row else None

    def create_column(self, column: dict[str, Any]) -> None:
        with self._Session() as session:
            row = ColumnModel(
                id=column["id"],
                database_id=column["database_id"],
                name=column["name"],
                type=column["type"],
                is_unique=column["is_unique"],
                order=column["order"],
                created_at=column["created_at"],
            )
            session.add(row)
            session.commit()

    def update_column(self, column_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(ColumnModel, column_id)
            if not row:
                raise KeyError(column_id)
            for key, value in updates.items():
                setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def delete_column(self, column_id: str) -> None:
        with self._Session() as session:
            row = session.get(ColumnModel, column_id)
            if row:
                session.delete(row)
                session.commit()

    def delete_for_databases(self, database_ids: list[str]) -> int:
        if not database_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(ColumnModel)
                .filter(ColumnModel.database_id.in_(database_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    @staticmethod
    def _to_dict(row: ColumnModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "database_id": row.database_id,
            "name": row.name,
            "type": row.type,
            "is_unique": bool(row.is_unique),
            "order": row.order,
            "created_at": _aware(row.created_at),
        }


class SQLiteRowRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_rows(
        self, database_ids: list[str], deleted: bool | None = False
    ) -> list[dict[str, Any]]:
        if not database_ids:
            return []
        with self._Session() as session:
            query = session.query(RowModel).filter(RowModel.database_id.in_(database_ids))
            rows = (
                _by_deleted(query, RowModel, deleted)
                .order_by(RowModel.created_at.desc(), RowModel.id.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def get_row(self, row_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(RowModel, row_id)
            return self._to_dict(row) if row else None

    def get_rows(self, row_ids: list[str]) -> list[dict[str, Any]]:
        if not row_ids:
            return []
        with self._Session() as session:
            rows = session.query(RowModel).filter(RowModel.id.in_(row_ids)).all()
            return [self._to_dict(row) for row in rows]

    def create_row(self, row: dict[str, Any]) -> None:
        with self._Session() as session:
            model = RowModel(
                id=row["id"],
                database_id=row["database_id"],
                data_json=dumps_json(row["data"]),
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                deleted_at=row.get("deleted_at"),
            )
            session.add(model)
            session.commit()

    def update_row(self, row_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(RowModel, row_id)
            if not row:
                raise KeyError(row_id)
            for key, value in updates.items():
                if key == "data":
                    row.data_json = dumps_json(value)
                else:
                    setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def set_deleted_at(self, row_ids: list[str], value: datetime | None) -> int:
        if not row_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(RowModel)
                .filter(RowModel.id.in_(row_ids))
                .update({RowModel.deleted_at: value}, synchronize_session=False)
            )
            session.commit()
            return count

    def stamp_database_rows(self, database_id: str, value: datetime) -> int:
        with self._Session() as session:
            count = (
                session.query(RowModel)
                .filter(RowModel.database_id == database_id)
                .update({RowModel.deleted_at: value}, synchronize_session=False)
            )
            session.commit()
            return count

    def delete_rows(self, row_ids: list[str]) -> int:
        if not row_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(RowModel)
                .filter(RowModel.id.in_(row_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    def delete_for_databases(self, database_ids: list[str]) -> int:
        if not database_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(RowModel)
                .filter(RowModel.database_id.in_(database_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    @staticmethod
    def _to_dict(row: RowModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "database_id": row.database_id,
            "data": loads_json(row.data_json) or {},
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
            "deleted_at": _aware(row.deleted_at),
        }


class SQLiteFormRepo:
    _JSON_KEYS = {"fields": "fields_json", "header_config": "header_config", "footer_config": "footer_config"}

    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_forms(self, scope: Scope) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = (
                _scoped(session.query(FormModel), FormModel, scope)
                .order_by(FormModel.created_at.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def get_form(self, form_id: str, scope: Scope) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                _scoped(session.query(FormModel), FormModel, scope)
                .filter(FormModel.id == form_id)
                .first()
            )
            return self._to_dict(row) if row else None

    def get_published_form(self, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = (
                session.query(FormModel)
                .filter(
                    FormModel.id == form_id,
                    FormModel.is_published.is_(True),
                    FormModel.deleted_at.is_(None),
                )
                .first()
            )
            return self._to_dict(row) if row else None

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]:
        with self._Session() as session:
            query = _scoped(session.query(FormModel), FormModel, scope).filter(
                FormModel.name.in_(list(names))
            )
            if exclude_id:
                query = query.filter(FormModel.id != exclude_id)
            return [self._to_dict(row) for row in query.all()]

    def create_form(self, form: dict[str, Any]) -> None:
        with self._Session() as session:
            row = FormModel(
                id=form["id"],
                user_id=form["user_id"],
                name=form["name"],
                fields_json=dumps_json(form["fields"]),
                header_config=dumps_json(form["header_config"]),
                footer_config=dumps_json(form["footer_config"]),
                is_published=form["is_published"],
                created_at=form["created_at"],
                updated_at=form["updated_at"],
                deleted_at=form.get("deleted_at"),
            )
            session.add(row)
            session.commit()

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            if not row:
                raise KeyError(form_id)
            for key, value in updates.items():
                if key in self._JSON_KEYS:
                    setattr(row, self._JSON_KEYS[key], dumps_json(value))
                else:
                    setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return self._to_dict(row)

    def set_deleted_at(self, form_ids: list[str], value: datetime | None) -> int:
        if not form_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(FormModel)
                .filter(FormModel.id.in_(form_ids))
                .update({FormModel.deleted_at: value}, synchronize_session=False)
            )
            session.commit()
            return count

    def delete_forms(self, form_ids: list[str]) -> int:
        if not form_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(FormModel)
                .filter(FormModel.id.in_(form_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    @staticmethod
    def _to_dict(row: FormModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "user_id": row.user_id,
            "name": row.name,
            "fields": loads_json(row.fields_json) or [],
            "header_config": loads_json(row.header_config) or {},
            "footer_config": loads_json(row.footer_config) or {},
            "is_published": bool(row.is_published),
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
            "deleted_at": _aware(row.deleted_at),
        }


class SQLiteSubmissionRepo:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    def list_submissions(self, form_ids: list[str]) -> list[dict[str, Any]]:
        if not form_ids:
            return []
        with self._Session() as session:
            rows = (
                session.query(SubmissionModel)
                .filter(SubmissionModel.form_id.in_(form_ids))
                .order_by(SubmissionModel.created_at.desc())
                .all()
            )
            return [self._to_dict(row) for row in rows]

    def create_submission(self, submission: dict[str, Any]) -> None:
        with self._Session() as session:
            row = SubmissionModel(
                id=submission["id"],
                form_id=submission["form_id"],
                data_json=dumps_json(submission["data"]),
                created_at=submission["created_at"],
            )
            session.add(row)
            session.commit()

    def delete_for_forms(self, form_ids: list[str]) -> int:
        if not form_ids:
            return 0
        with self._Session() as session:
            count = (
                session.query(SubmissionModel)
                .filter(SubmissionModel.form_id.in_(form_ids))
                .delete(synchronize_session=False)
            )
            session.commit()
            return count

    @staticmethod
    def _to_dict(row: SubmissionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "form_id": row.form_id,
            "data": loads_json(row.data_json) or {},
            "created_at": _aware(row.created_at),
        }


class SQLiteStorage:
    def __init__(self, db_path: Path) -> None:
        self._engine = create_engine(f"sqlite:///{db_path}", future=True)
        self._Session = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self.databases = SQLiteDatabaseRepo(self._Session)
        self.columns = SQLiteColumnRepo(self._Session)
        self.rows = SQLiteRowRepo(self._Session)
        self.forms = SQLiteFormRepo(self._Session)
        self.submissions = SQLiteSubmissionRepo(self._Session)
