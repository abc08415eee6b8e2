"""Pytest configuration and fixtures."""

import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

from PyQt6.QtCore import QSizeF

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from annotator_workbench.core.geometry import Point  # noqa: E402
from annotator_workbench.core.models import (  # noqa: E402
    BoundingBoxAnnotation,
    Keypoint,
    KeypointAnnotation,
    PolygonAnnotation,
)
from annotator_workbench.core.registries import (  # noqa: E402
    ImageInfo,
    InMemoryImageRegistry,
    InMemoryLabelRegistry,
    InMemoryProjectRegistry,
    Label,
)
from annotator_workbench.core.service import AnnotationService  # noqa: E402
from annotator_workbench.core.store import AnnotationStore  # noqa: E402

CREATED = datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def qapp():
    """Create a QCoreApplication for tests that need an event loop."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])

    yield app


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def canvas():
    """A laid-out 100x100 canvas."""
    return QSizeF(100, 100)


@pytest.fixture
def store(tmp_path):
    """An open file-backed annotation store."""
    store = AnnotationStore(tmp_path / "annotations.db").open()
    yield store
    store.close()


@pytest.fixture
def images():
    return InMemoryImageRegistry([
        ImageInfo(id="img-1", width=640, height=480),
        ImageInfo(id="img-2", width=800, height=600),
    ])


@pytest.fixture
def labels():
    registry = InMemoryLabelRegistry([
        Label(id="lbl-cat", name="cat"),
        Label(id="lbl-dog", name="dog"),
    ])
    registry.select("lbl-cat")
    return registry


@pytest.fixture
def projects():
    return InMemoryProjectRegistry(["proj-1"])


@pytest.fixture
def service(store, images, labels, projects):
    return AnnotationService(store, images, labels=labels, projects=projects)


@pytest.fixture
def make_box():
    """Factory for bounding box annotations."""

    def _make(id="box-1", x=0.1, y=0.1, width=0.4, height=0.5, image_id="img-1", **kwargs):
        return BoundingBoxAnnotation(
            id=id,
            label_id=kwargs.pop("label_id", "lbl-cat"),
            image_id=image_id,
            project_id=kwargs.pop("project_id", "proj-1"),
            created_at=kwargs.pop("created_at", CREATED),
            updated_at=kwargs.pop("updated_at", CREATED),
            x=x,
            y=y,
            width=width,
            height=height,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_polygon():
    """Factory for polygon annotations."""

    def _make(id="poly-1", points=((0.2, 0.2), (0.8, 0.2), (0.5, 0.8)), image_id="img-1", **kwargs):
        return PolygonAnnotation(
            id=id,
            label_id=kwargs.pop("label_id", "lbl-cat"),
            image_id=image_id,
            project_id=kwargs.pop("project_id", "proj-1"),
            created_at=kwargs.pop("created_at", CREATED),
            updated_at=kwargs.pop("updated_at", CREATED),
            points=tuple(Point(x, y) for x, y in points),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_keypoints():
    """Factory for keypoint annotations."""

    def _make(id="kp-1", points=((0.5, 0.5),), image_id="img-1", **kwargs):
        return KeypointAnnotation(
            id=id,
            label_id=kwargs.pop("label_id", "lbl-cat"),
            image_id=image_id,
            project_id=kwargs.pop("project_id", "proj-1"),
            created_at=kwargs.pop("created_at", CREATED),
            updated_at=kwargs.pop("updated_at", CREATED),
            keypoints=tuple(
                Keypoint(name=f"keypoint_{i}", point=Point(x, y), visibility=1)
                for i, (x, y) in enumerate(points, start=1)
            ),
            **kwargs,
        )

    return _make
