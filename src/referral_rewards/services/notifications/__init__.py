from .alerts import RunAlertNotifier

__all__ = ["RunAlertNotifier"]
