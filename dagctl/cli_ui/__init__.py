"""Terminal rendering for the dagctl CLI."""

from dagctl.cli_ui.status_renderer import StatusTableRenderer

__all__ = ["StatusTableRenderer"]
