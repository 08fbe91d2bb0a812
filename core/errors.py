"""
Converter error types

All failures raised by the conversion engine derive from ConversionError.
"""

from typing import List, Optional


class ConversionError(Exception):
    """Base class of all conversion failures"""


class FormatError(ConversionError):
    """Malformed input: chunk nesting, quoting, binary layout, units"""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class NotFoundError(ConversionError, FileNotFoundError):
    """A referenced media or device state entry does not exist"""

    def __init__(self, media_id: str, location: str = ''):
        self.media_id = media_id
        message = f"Media file not found: {media_id}"
        if location:
            message += f" ({location})"
        super().__init__(message)


class ValidationError(ConversionError):
    """The project object graph is structurally inconsistent"""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__(f"{len(self.problems)} validation problem(s): " + '; '.join(self.problems))


class ConversionCancelled(ConversionError):
    """The conversion was cancelled by the user"""


__all__ = [
    'ConversionError',
    'FormatError',
    'NotFoundError',
    'ValidationError',
    'ConversionCancelled',
]
