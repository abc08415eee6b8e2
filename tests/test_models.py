"""Tests for core models."""

from datetime import datetime, timedelta, timezone

import pytest

from annotator_workbench.core.errors import ValidationError
from annotator_workbench.core.geometry import Point
from annotator_workbench.core.models import (
    AnnotationType,
    BoundingBoxAnnotation,
    Keypoint,
    Visibility,
    from_millis,
    new_annotation_id,
    to_millis,
    utc_now,
)

from conftest import CREATED


class TestBoundingBoxAnnotation:
    """Tests for the BoundingBoxAnnotation class."""

    def test_create_box(self, make_box):
        """Test creating a bounding box annotation."""
        box = make_box()

        assert box.type == AnnotationType.BOUNDING_BOX
        assert box.x == 0.1
        assert box.width == 0.4
        assert box.notes is None

    def test_corners(self, make_box):
        """Test corner points of a box."""
        first, second = make_box(x=0.2, y=0.3, width=0.5, height=0.25).corners

        assert first == Point(0.2, 0.3)
        assert second.x == pytest.approx(0.7)
        assert second.y == pytest.approx(0.55)

    @pytest.mark.parametrize("width, height", [(0.0, 0.5), (0.5, 0.0), (-0.1, 0.5)])
    def test_non_positive_size_rejected(self, make_box, width, height):
        """Test that empty boxes are rejected."""
        with pytest.raises(ValidationError):
            make_box(width=width, height=height)

    def test_box_beyond_image_rejected(self, make_box):
        """Test that a box may not leave the unit square."""
        with pytest.raises(ValidationError):
            make_box(x=0.7, width=0.4)

    def test_float_rounding_tolerated(self, make_box):
        """Test that x + width slightly above 1 from rounding is accepted."""
        box = make_box(x=0.7, width=0.3 + 1e-12)

        assert box.x + box.width > 1.0
        assert box.corners[1].x == 1.0

    def test_origin_outside_rejected(self, make_box):
        with pytest.raises(ValidationError):
            make_box(x=1.2)


class TestPolygonAnnotation:
    """Tests for the PolygonAnnotation class."""

    def test_create_polygon(self, make_polygon):
        """Test creating a polygon annotation."""
        polygon = make_polygon()

        assert polygon.type == AnnotationType.POLYGON
        assert len(polygon.points) == 3
        assert isinstance(polygon.points, tuple)

    def test_two_points_rejected(self, make_polygon):
        """Test that polygons need at least three vertices."""
        with pytest.raises(ValidationError, match="at least 3 points"):
            make_polygon(points=((0.1, 0.1), (0.5, 0.5)))

    def test_list_of_points_becomes_tuple(self, make_polygon):
        """Test that vertices are stored as an immutable tuple."""
        polygon = make_polygon()
        copy = polygon.with_changes(points=list(polygon.points))

        assert isinstance(copy.points, tuple)
        assert copy == polygon


class TestKeypointAnnotation:
    """Tests for the KeypointAnnotation class."""

    def test_create_keypoints(self, make_keypoints):
        """Test creating a keypoint annotation."""
        annotation = make_keypoints(points=((0.1, 0.2), (0.3, 0.4)))

        assert annotation.type == AnnotationType.KEYPOINT
        assert [k.name for k in annotation.keypoints] == ["keypoint_1", "keypoint_2"]
        assert annotation.points == (Point(0.1, 0.2), Point(0.3, 0.4))

    def test_empty_keypoints_rejected(self, make_keypoints):
        """Test that at least one keypoint is required."""
        with pytest.raises(ValidationError):
            make_keypoints(points=())

    def test_keypoint_visibility(self):
        """Test keypoint visibility values."""
        occluded = Keypoint("nose", Point(0.5, 0.5), Visibility.OCCLUDED)

        assert occluded.visibility == 2
        with pytest.raises(ValidationError):
            Keypoint("nose", Point(0.5, 0.5), 3)

    def test_keypoint_name_required(self):
        with pytest.raises(ValidationError):
            Keypoint("", Point(0.5, 0.5))


class TestCommonFields:
    """Tests for the fields shared by all variants."""

    @pytest.mark.parametrize("field", ["id", "label_id", "image_id", "project_id"])
    def test_empty_ids_rejected(self, make_box, field):
        """Test that identifiers must not be empty."""
        with pytest.raises(ValidationError):
            make_box(**{field: ""})

    def test_naive_datetime_rejected(self, make_box):
        """Test that timestamps must be timezone-aware."""
        with pytest.raises(ValidationError):
            make_box(created_at=datetime(2024, 1, 1), updated_at=datetime(2024, 1, 1))

    def test_updated_before_created_rejected(self, make_box):
        """Test that updated_at may not precede created_at."""
        with pytest.raises(ValidationError):
            make_box(updated_at=CREATED - timedelta(seconds=1))

    def test_annotations_are_immutable(self, make_box):
        """Test that fields cannot be assigned."""
        box = make_box()

        with pytest.raises(AttributeError):
            box.x = 0.5

    def test_with_changes(self, make_box):
        """Test deriving a modified copy."""
        box = make_box()
        moved = box.with_changes(x=0.2, label_id="lbl-dog")

        assert moved.id == box.id
        assert moved.x == 0.2
        assert moved.label_id == "lbl-dog"
        assert box.x == 0.1

    def test_with_changes_validates(self, make_box):
        """Test that copies are validated like new annotations."""
        with pytest.raises(ValidationError):
            make_box().with_changes(width=0.0)

    def test_id_is_immutable(self, make_box):
        """Test that the id cannot be changed."""
        with pytest.raises(ValidationError):
            make_box().with_changes(id="other")

    def test_touch(self, make_box):
        """Test refreshing updated_at."""
        later = CREATED + timedelta(minutes=5)

        touched = make_box().touch(later)

        assert touched.created_at == CREATED
        assert touched.updated_at == later

    def test_touch_never_precedes_creation(self, make_box):
        touched = make_box().touch(CREATED - timedelta(days=1))

        assert touched.updated_at == CREATED


class TestHelpers:
    """Tests for timestamp and id helpers."""

    def test_millis_round_trip(self):
        """Test millisecond conversion of a truncated timestamp."""
        assert from_millis(to_millis(CREATED)) == CREATED

    def test_to_millis(self):
        assert to_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000

    def test_utc_now_is_truncated(self):
        """Test that the clock has millisecond precision."""
        now = utc_now()

        assert now.tzinfo is not None
        assert now.microsecond % 1000 == 0

    def test_new_ids_are_unique(self):
        assert len({new_annotation_id() for _ in range(100)}) == 100

    def test_variant_is_box(self, make_box):
        assert isinstance(make_box(), BoundingBoxAnnotation)
