"""Write generated Python modules for a finished generation run."""
from __future__ import annotations

from .python import (
    MODELS_MODULE,
    annotation,
    emit_all,
    module_name,
    render_all,
    render_models,
    render_query_module,
)

__all__ = [
    "MODELS_MODULE",
    "annotation",
    "emit_all",
    "module_name",
    "render_all",
    "render_models",
    "render_query_module",
]
