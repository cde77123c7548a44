from .sink import NotificationSink

__all__ = ["NotificationSink"]
