"""
Annotator Workbench - annotation core for image dataset labeling.

Draw, persist and query bounding boxes, polygons and keypoint sets over
raster images. Coordinates are stored normalized to the image size.
"""

__version__ = "1.0.0"
__author__ = "Annotator Workbench Team"
