"""
Inspection workflow and voice annotation core.

Importing the package is side-effect free; use `inspection_core.app.InspectionCore`
as the entry point.
"""

__version__ = "0.1.0"
