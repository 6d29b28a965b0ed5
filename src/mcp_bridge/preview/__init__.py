from .app import create_preview_app, run_preview
from .injection import PreviewError, WidgetGlobals, fetch_resource_text, inject_scripts

__all__ = [
    "PreviewError",
    "WidgetGlobals",
    "create_preview_app",
    "fetch_resource_text",
    "inject_scripts",
    "run_preview",
]
