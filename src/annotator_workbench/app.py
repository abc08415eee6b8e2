"""Application bootstrap for Annotator Workbench."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QSizeF

from .core.config import DEFAULT_CONFIG_PATH, AppConfig, ConfigManager
from .core.controller import InteractionController
from .core.errors import StorageUnavailableError
from .core.registries import (
    ImageRegistry,
    InMemoryImageRegistry,
    LabelRegistry,
    ProjectRegistry,
)
from .core.service import AnnotationService
from .core.store import AnnotationStore
from .core.tools import ToolKind
from .workers.annotation_worker import AnnotationTaskRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging to stdout.

    Safe to call again once the configured level is known; later calls
    only change the level.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
    logging.getLogger().setLevel(numeric_level)


def create_store(config: AppConfig) -> AnnotationStore:
    """
    Open the annotation store described by the configuration.

    Corrupted records are removed right away when repair_on_open is set.

    Returns:
        Open AnnotationStore instance
    """
    store = AnnotationStore(config.database_path).open()
    if config.repair_on_open:
        try:
            removed = store.repair_corrupted()
        except StorageUnavailableError:
            store.close()
            raise
        if removed:
            logger.warning(f"Removed {removed} corrupted annotations on open")
    return store


def create_service(
    store: AnnotationStore,
    images: Optional[ImageRegistry] = None,
    labels: Optional[LabelRegistry] = None,
    projects: Optional[ProjectRegistry] = None,
) -> AnnotationService:
    """Create the annotation service around an open store."""
    return AnnotationService(
        store,
        images if images is not None else InMemoryImageRegistry(),
        labels=labels,
        projects=projects,
    )


def create_controller(
    config: AppConfig,
    service: AnnotationService,
    labels: LabelRegistry,
    image_id: str,
    project_id: str,
    canvas_size: Optional[QSizeF] = None,
    runner: Optional[AnnotationTaskRunner] = None,
) -> InteractionController:
    """
    Create the interaction session for one image.

    The hit radius and the initially armed tool come from the configuration;
    an unknown tool name falls back to no tool.
    """
    controller = InteractionController(
        service,
        labels,
        image_id,
        project_id,
        canvas_size=canvas_size,
        hit_radius=config.hit_radius,
        runner=runner,
    )
    try:
        tool = ToolKind(config.default_tool)
    except ValueError:
        logger.warning(f"Unknown default tool {config.default_tool!r}, starting without a tool")
        tool = ToolKind.NONE
    if tool != ToolKind.NONE:
        controller.select_tool(tool)
    return controller


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="annotator-workbench",
        description="Maintenance commands for the annotation store.",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config.yaml")
    parser.add_argument("--database", help="Override the database path from the configuration")
    parser.add_argument("--repair", action="store_true", help="Delete corrupted annotation records")
    parser.add_argument("--stats", metavar="PROJECT_ID", help="Print annotation counts per type")
    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """
    Run the maintenance entry point.

    Returns:
        Exit code
    """
    args = build_parser().parse_args(argv)
    configure_logging()
    config = ConfigManager(args.config).config
    if args.database:
        config.database_path = args.database
    configure_logging(config.log_level)

    try:
        with create_store(config) as store:
            service = create_service(store)
            if args.repair:
                removed = service.repair_corrupted()
                print(f"Removed {removed} corrupted annotations")
            if args.stats:
                stats = service.type_statistics(args.stats)
                total = service.count_by_project(args.stats)
                print(f"Project {args.stats}: {total} annotations")
                for annotation_type, count in sorted(stats.items(), key=lambda item: item[0].value):
                    print(f"  {annotation_type.value}: {count}")
    except StorageUnavailableError as e:
        logger.error(f"Annotation store unavailable: {e}")
        return 1

    return 0


def main() -> None:
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
