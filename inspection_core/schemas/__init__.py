"""
Pydantic schemas for every value crossing the inspection core boundary.

Import specific models from submodules (e.g., inspection_core.schemas.inspection).
"""
