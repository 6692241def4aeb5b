"""Case Threads: comment threads, mentions and notifications for service cases."""

__version__ = "1.0.0"
