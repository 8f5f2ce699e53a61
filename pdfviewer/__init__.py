"""
PDF Viewer Core
===============
Page rendering and incremental text-annotation engine for PDF documents.

Architecture:
    - Document Loader: Opens a PDF from a URL, path or byte buffer
    - Page Renderer: Rasterizes a page at a given scale/rotation
    - Viewport Controller: Navigation/zoom/rotation state machine
    - Render Scheduler: Last-write-wins render consumer loop
    - Annotation Layer: Page-anchored text annotations with
      screen <-> page coordinate mapping
    - Persistence Gateway: Saves annotation collections externally

Version: 1.0.0
"""

__version__ = "1.0.0"
