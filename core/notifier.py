"""
Progress notification and cancellation

The converters never print or log user facing progress themselves. They
get a Notifier and a CancellationToken passed in.
"""

import logging
import threading
from typing import Optional

from .errors import ConversionCancelled

logger = logging.getLogger(__name__)


class Notifier:
    """Receives the progress and error messages of a conversion"""

    def log(self, message: str, *args):
        raise NotImplementedError

    def log_error(self, message: str, *args, exc: Optional[BaseException] = None):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Forwards all messages to the logging module"""

    def __init__(self, target: Optional[logging.Logger] = None):
        self.logger = target or logger

    def log(self, message: str, *args):
        self.logger.info(message, *args)

    def log_error(self, message: str, *args, exc: Optional[BaseException] = None):
        if exc is not None:
            self.logger.error(message + ": %s", *args, exc)
        else:
            self.logger.error(message, *args)


class CancellationToken:
    """Cooperative cancellation, checked between the conversion stages"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check(self):
        """Raise ConversionCancelled if cancel() was called"""
        if self._event.is_set():
            raise ConversionCancelled("Conversion cancelled")


__all__ = [
    'Notifier',
    'LoggingNotifier',
    'CancellationToken',
]
