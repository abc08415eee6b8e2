"""Embedded SQLite store for annotation records."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    insert,
    literal_column,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import StaticPool

from .codec import REQUIRED_FIELDS, AnnotationRecord, decode, encode
from .errors import CorruptionError, StorageUnavailableError
from .models import Annotation, AnnotationType

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

metadata = MetaData()

# Required columns stay nullable so that damaged rows can still be read
# back and removed by repair_corrupted().
annotations_table = Table(
    "annotations",
    metadata,
    Column("id", String, primary_key=True),
    Column("type", String),
    Column("label_id", String),
    Column("image_id", String),
    Column("project_id", String),
    Column("created_at", Integer),
    Column("updated_at", Integer),
    Column("notes", Text, nullable=True),
    Column("payload", Text),
    Index("idx_annotations_image_id", "image_id"),
    Index("idx_annotations_label_id", "label_id"),
    Index("idx_annotations_project_id", "project_id"),
)

_INSERTION_ORDER = (annotations_table.c.created_at, literal_column("annotations.rowid"))


def _row_to_record(row: Row) -> AnnotationRecord:
    return AnnotationRecord.from_dict(dict(row._mapping))


class AnnotationStore:
    """
    Persistence handle for annotations.

    Explicitly opened and closed; several independent stores may exist
    side by side. Bulk reads skip records that cannot be decoded.
    """

    def __init__(self, database_path: Union[str, Path] = IN_MEMORY, echo: bool = False) -> None:
        """
        Initialize the store without connecting.

        Args:
            database_path: SQLite file path, or ":memory:"
            echo: Log every SQL statement
        """
        self.database_path = str(database_path)
        self._echo = echo
        self._engine: Optional[Engine] = None

    # === Lifecycle ===

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> AnnotationStore:
        """Connect to the database and create the schema if needed."""
        if self._engine is not None:
            return self

        try:
            if self.database_path == IN_MEMORY:
                engine = create_engine(
                    "sqlite://",
                    echo=self._echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
                engine = create_engine(
                    f"sqlite:///{self.database_path}",
                    echo=self._echo,
                    connect_args={"check_same_thread": False},
                )
            metadata.create_all(engine)
        except (DBAPIError, OSError) as e:
            logger.error(f"Could not open annotation store at {self.database_path}: {e}")
            raise StorageUnavailableError(f"Could not open annotation store: {e}") from e

        self._engine = engine
        logger.info(f"Opened annotation store at {self.database_path}")
        return self

    def close(self) -> None:
        """Release all connections."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info(f"Closed annotation store at {self.database_path}")

    def __enter__(self) -> AnnotationStore:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction, mapping driver errors."""
        if self._engine is None:
            raise StorageUnavailableError("Annotation store is not open")
        try:
            with self._engine.begin() as conn:
                yield conn
        except DBAPIError as e:
            logger.error(f"Annotation store error: {e}")
            raise StorageUnavailableError(f"Annotation store error: {e}") from e

    # === Writes ===

    def insert(self, annotation: Annotation) -> None:
        """Insert an annotation, replacing any record with the same id."""
        self.insert_records([encode(annotation)])

    def insert_batch(self, annotations: List[Annotation]) -> None:
        """Insert several annotations in one transaction."""
        self.insert_records([encode(a) for a in annotations])

    def insert_records(self, records: List[AnnotationRecord]) -> None:
        """Write raw records as-is (replace on id conflict)."""
        if not records:
            return
        with self._connect() as conn:
            conn.execute(
                insert(annotations_table).prefix_with("OR REPLACE"),
                [record.to_dict() for record in records],
            )

    def update(self, annotation: Annotation) -> bool:
        """
        Overwrite an existing annotation.

        Returns:
            True if a record with the annotation's id existed
        """
        values = encode(annotation).to_dict()
        values.pop("id")
        with self._connect() as conn:
            result = conn.execute(
                update(annotations_table)
                .where(annotations_table.c.id == annotation.id)
                .values(**values)
            )
            return result.rowcount > 0

    def delete(self, annotation_id: str) -> bool:
        """Delete one annotation. Returns True if it existed."""
        with self._connect() as conn:
            result = conn.execute(
                delete(annotations_table).where(annotations_table.c.id == annotation_id)
            )
            return result.rowcount > 0

    def delete_by_image(self, image_id: str) -> int:
        return self._delete_where(annotations_table.c.image_id == image_id)

    def delete_by_project(self, project_id: str) -> int:
        return self._delete_where(annotations_table.c.project_id == project_id)

    def delete_by_label(self, label_id: str) -> int:
        return self._delete_where(annotations_table.c.label_id == label_id)

    def _delete_where(self, condition) -> int:
        with self._connect() as conn:
            result = conn.execute(delete(annotations_table).where(condition))
            return result.rowcount

    # === Reads ===

    def get_record(self, annotation_id: str) -> Optional[AnnotationRecord]:
        with self._connect() as conn:
            row = conn.execute(
                select(annotations_table).where(annotations_table.c.id == annotation_id)
            ).first()
        return _row_to_record(row) if row is not None else None

    def get(self, annotation_id: str) -> Optional[Annotation]:
        """
        Fetch a single annotation by id.

        Raises:
            CorruptionError: If the stored record cannot be decoded
        """
        record = self.get_record(annotation_id)
        return decode(record) if record is not None else None

    def list_records(self, condition=None) -> List[AnnotationRecord]:
        """Raw records in insertion order, optionally filtered."""
        query = select(annotations_table).order_by(*_INSERTION_ORDER)
        if condition is not None:
            query = query.where(condition)
        with self._connect() as conn:
            rows = conn.execute(query).all()
        return [_row_to_record(row) for row in rows]

    def _decode_all(self, records: List[AnnotationRecord]) -> List[Annotation]:
        annotations = []
        for record in records:
            try:
                annotations.append(decode(record))
            except CorruptionError as e:
                logger.warning(f"Skipping corrupted annotation {e.record_id!r}: {e}")
        return annotations

    def list_by_image(self, image_id: str) -> List[Annotation]:
        return self._decode_all(self.list_records(annotations_table.c.image_id == image_id))

    def list_by_project(self, project_id: str) -> List[Annotation]:
        return self._decode_all(self.list_records(annotations_table.c.project_id == project_id))

    def list_by_label(self, label_id: str) -> List[Annotation]:
        return self._decode_all(self.list_records(annotations_table.c.label_id == label_id))

    def list_by_type(self, project_id: str, annotation_type: AnnotationType) -> List[Annotation]:
        return self._decode_all(self.list_records(
            (annotations_table.c.project_id == project_id)
            & (annotations_table.c.type == AnnotationType(annotation_type).value)
        ))

    # === Counts ===

    def _count_where(self, condition) -> int:
        with self._connect() as conn:
            return conn.execute(
                select(func.count()).select_from(annotations_table).where(condition)
            ).scalar_one()

    def count_by_image(self, image_id: str) -> int:
        return self._count_where(annotations_table.c.image_id == image_id)

    def count_by_project(self, project_id: str) -> int:
        return self._count_where(annotations_table.c.project_id == project_id)

    def count_by_label(self, label_id: str) -> int:
        return self._count_where(annotations_table.c.label_id == label_id)

    def image_ids_for_label(self, label_id: str) -> List[str]:
        """Distinct image ids that carry at least one annotation of a label."""
        with self._connect() as conn:
            rows = conn.execute(
                select(annotations_table.c.image_id)
                .where(annotations_table.c.label_id == label_id)
                .distinct()
            ).all()
        return [row.image_id for row in rows if row.image_id]

    def type_statistics(self, project_id: str) -> Dict[AnnotationType, int]:
        """Number of annotations per type within a project."""
        with self._connect() as conn:
            rows = conn.execute(
                select(annotations_table.c.type, func.count().label("count"))
                .where(annotations_table.c.project_id == project_id)
                .group_by(annotations_table.c.type)
            ).all()

        stats: Dict[AnnotationType, int] = {}
        for row in rows:
            try:
                stats[AnnotationType(row.type)] = row.count
            except ValueError:
                logger.warning(f"Ignoring unknown annotation type {row.type!r} in statistics")
        return stats

    # === Maintenance ===

    def repair_corrupted(self) -> int:
        """
        Permanently delete records that cannot be read.

        First removes rows with missing required fields, then decodes every
        remaining row and removes the ones that still fail.

        Returns:
            Total number of records removed (0 on a clean store)
        """
        columns = [annotations_table.c[name] for name in REQUIRED_FIELDS]
        incomplete = or_(*[or_(column.is_(None), column == "") for column in columns])

        with self._connect() as conn:
            removed_incomplete = conn.execute(
                delete(annotations_table).where(incomplete)
            ).rowcount

            undecodable = []
            for row in conn.execute(select(annotations_table)).all():
                try:
                    decode(_row_to_record(row))
                except CorruptionError:
                    undecodable.append(row.id)

            removed_undecodable = 0
            if undecodable:
                removed_undecodable = conn.execute(
                    delete(annotations_table).where(annotations_table.c.id.in_(undecodable))
                ).rowcount

        total = removed_incomplete + removed_undecodable
        logger.info(
            f"Repair removed {total} corrupted annotations "
            f"({removed_incomplete} incomplete, {removed_undecodable} undecodable)"
        )
        return total
