"""SmartID institution attendance and leave service."""

__version__ = "0.1.0"
