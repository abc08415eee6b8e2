"""Tests for the annotation store."""

from dataclasses import replace
from datetime import timedelta

import pytest

from annotator_workbench.core.codec import encode
from annotator_workbench.core.errors import CorruptionError, StorageUnavailableError
from annotator_workbench.core.models import AnnotationType
from annotator_workbench.core.store import AnnotationStore

from conftest import CREATED


def _corrupt_records(make_box):
    """Records damaged in the ways a crash or a bad migration leaves them."""
    missing_label = replace(encode(make_box(id="bad-1")), label_id=None)
    bad_json = replace(encode(make_box(id="bad-2")), payload="{oops")
    wrong_type = replace(encode(make_box(id="bad-3")), type="polygon")
    return [missing_label, bad_json, wrong_type]


class TestLifecycle:
    """Tests for opening and closing the store."""

    def test_open_creates_file(self, tmp_path):
        """Test that opening creates the database and its directory."""
        path = tmp_path / "nested" / "annotations.db"

        with AnnotationStore(path) as store:
            assert store.is_open

        assert path.exists()
        assert not store.is_open

    def test_in_memory_store(self, make_box):
        """Test that an in-memory store keeps data across calls."""
        with AnnotationStore() as store:
            store.insert(make_box())

            assert store.get("box-1") == make_box()

    def test_independent_stores(self, tmp_path, make_box):
        """Test that two stores do not share data."""
        with AnnotationStore(tmp_path / "a.db") as first, AnnotationStore(tmp_path / "b.db") as second:
            first.insert(make_box())

            assert second.count_by_image("img-1") == 0

    def test_closed_store_unavailable(self, make_box):
        """Test that calls on a closed store raise StorageUnavailableError."""
        store = AnnotationStore()

        with pytest.raises(StorageUnavailableError):
            store.insert(make_box())
        with pytest.raises(StorageUnavailableError):
            store.list_by_image("img-1")

    def test_unopenable_path(self, tmp_path):
        """Test that an unusable location raises StorageUnavailableError."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageUnavailableError):
            AnnotationStore(blocker / "annotations.db").open()

    def test_data_persists_after_reopen(self, tmp_path, make_polygon):
        path = tmp_path / "annotations.db"
        with AnnotationStore(path) as store:
            store.insert(make_polygon())

        with AnnotationStore(path) as store:
            assert store.get("poly-1") == make_polygon()


class TestWrites:
    """Tests for insert, update and delete."""

    def test_insert_and_get(self, store, make_box, make_polygon, make_keypoints):
        """Test storing every variant."""
        for annotation in (make_box(), make_polygon(), make_keypoints()):
            store.insert(annotation)

            assert store.get(annotation.id) == annotation

    def test_get_missing(self, store):
        assert store.get("missing") is None

    def test_insert_replaces_same_id(self, store, make_box):
        """Test that inserting an existing id overwrites it."""
        store.insert(make_box())
        store.insert(make_box(x=0.3))

        assert store.count_by_image("img-1") == 1
        assert store.get("box-1").x == 0.3

    def test_insert_batch(self, store, make_box):
        store.insert_batch([make_box(id=f"box-{i}") for i in range(5)])

        assert store.count_by_project("proj-1") == 5

    def test_update(self, store, make_box):
        """Test overwriting an annotation."""
        store.insert(make_box())

        assert store.update(make_box(width=0.2, notes="smaller")) is True
        assert store.get("box-1").width == 0.2
        assert store.get("box-1").notes == "smaller"

    def test_update_missing(self, store, make_box):
        """Test that updating an unknown id changes nothing."""
        assert store.update(make_box()) is False
        assert store.get("box-1") is None

    def test_delete(self, store, make_box):
        """Test deleting an annotation."""
        store.insert(make_box())

        assert store.delete("box-1") is True
        assert store.delete("box-1") is False
        assert store.get("box-1") is None

    def test_delete_by_scope(self, store, make_box):
        """Test bulk deletes by image, label and project."""
        store.insert_batch([
            make_box(id="a", image_id="img-1"),
            make_box(id="b", image_id="img-2"),
            make_box(id="c", image_id="img-2", label_id="lbl-dog"),
            make_box(id="d", image_id="img-1", project_id="proj-2"),
        ])

        assert store.delete_by_label("lbl-dog") == 1
        assert store.delete_by_image("img-2") == 1
        assert store.delete_by_project("proj-2") == 1
        assert [a.id for a in store.list_by_project("proj-1")] == ["a"]


class TestReads:
    """Tests for listings and counts."""

    def test_list_by_image_in_insertion_order(self, store, make_box):
        """Test that listings follow creation order."""
        store.insert(make_box(id="late", created_at=CREATED + timedelta(seconds=2),
                              updated_at=CREATED + timedelta(seconds=2)))
        store.insert(make_box(id="early"))
        store.insert(make_box(id="same-time"))

        assert [a.id for a in store.list_by_image("img-1")] == ["early", "same-time", "late"]

    def test_list_by_label_and_type(self, store, make_box, make_polygon, make_keypoints):
        store.insert_batch([
            make_box(),
            make_polygon(label_id="lbl-dog"),
            make_keypoints(),
        ])

        assert [a.id for a in store.list_by_label("lbl-dog")] == ["poly-1"]
        assert [a.id for a in store.list_by_type("proj-1", AnnotationType.KEYPOINT)] == ["kp-1"]
        assert store.list_by_type("proj-2", AnnotationType.KEYPOINT) == []

    def test_counts(self, store, make_box):
        store.insert_batch([
            make_box(id="a"),
            make_box(id="b", image_id="img-2", label_id="lbl-dog"),
        ])

        assert store.count_by_image("img-1") == 1
        assert store.count_by_project("proj-1") == 2
        assert store.count_by_label("lbl-dog") == 1
        assert store.count_by_image("unknown") == 0

    def test_image_ids_for_label(self, store, make_box):
        store.insert_batch([
            make_box(id="a", image_id="img-1"),
            make_box(id="b", image_id="img-1"),
            make_box(id="c", image_id="img-2"),
        ])

        assert sorted(store.image_ids_for_label("lbl-cat")) == ["img-1", "img-2"]

    def test_type_statistics(self, store, make_box, make_polygon, make_keypoints):
        """Test per-type counts within a project."""
        store.insert_batch([
            make_box(id="a"),
            make_box(id="b"),
            make_polygon(),
            make_keypoints(project_id="proj-2"),
        ])

        assert store.type_statistics("proj-1") == {
            AnnotationType.BOUNDING_BOX: 2,
            AnnotationType.POLYGON: 1,
        }
        assert store.type_statistics("empty") == {}


class TestCorruption:
    """Tests for handling damaged records."""

    def test_listing_skips_corrupted(self, store, make_box):
        """Test that bulk reads return only decodable annotations."""
        store.insert(make_box(id="good"))
        store.insert_records(_corrupt_records(make_box))

        assert [a.id for a in store.list_by_image("img-1")] == ["good"]

    def test_get_corrupted_raises(self, store, make_box):
        """Test that single reads report corruption."""
        store.insert_records(_corrupt_records(make_box))

        with pytest.raises(CorruptionError):
            store.get("bad-2")

    def test_repair_removes_corrupted(self, store, make_box):
        """Test that repair deletes every unreadable record."""
        store.insert(make_box(id="good"))
        store.insert_records(_corrupt_records(make_box))

        assert store.repair_corrupted() == 3
        assert [r.id for r in store.list_records()] == ["good"]

    def test_repair_is_idempotent(self, store, make_box):
        """Test that a second repair finds nothing."""
        store.insert_records(_corrupt_records(make_box))

        store.repair_corrupted()

        assert store.repair_corrupted() == 0

    def test_repair_on_clean_store(self, store, make_box):
        store.insert(make_box())

        assert store.repair_corrupted() == 0
        assert store.count_by_image("img-1") == 1

    def test_counts_include_corrupted_until_repaired(self, store, make_box):
        """Test that counts see raw rows, so repair changes them."""
        store.insert(make_box(id="good"))
        store.insert_records([replace(encode(make_box(id="bad")), payload="{oops")])

        assert store.count_by_image("img-1") == 2
        store.repair_corrupted()
        assert store.count_by_image("img-1") == 1

    def test_unknown_type_ignored_in_statistics(self, store, make_box):
        record = replace(encode(make_box(id="odd")), type="circle")
        store.insert_records([record])

        assert store.type_statistics("proj-1") == {}
