"""Template catalogue and dashboard rendering."""

from dashspine.rendering.renderer import RenderedDashboard, Renderer, find_unresolved, render_tree
from dashspine.rendering.templates import TemplateStore, validate_templates

__all__ = [
    "RenderedDashboard",
    "Renderer",
    "find_unresolved",
    "render_tree",
    "TemplateStore",
    "validate_templates",
]
