"""
Conversion Task

Runs one conversion: read the source into a container, validate the
project, write the destination. Direction is selected by the extension of
the source file:

    .rpp / .rpp-bak  ->  .dawproject
    .dawproject      ->  .rpp
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .config import DAWPROJECT_EXTENSION, REAPER_EXTENSIONS, ConverterSettings
from .errors import ConversionCancelled, ConversionError, ValidationError
from .notifier import CancellationToken, LoggingNotifier, Notifier
from .validation import validate

logger = logging.getLogger(__name__)


class ConversionTask:
    """
    A single conversion from source to output

    The reader needs a read(path) method returning a DawProjectContainer,
    the writer a write(container, path) method.
    """

    def __init__(self, source: Union[str, Path], output: Union[str, Path], reader, writer,
                 notifier: Optional[Notifier] = None, token: Optional[CancellationToken] = None,
                 overwrite: bool = True):
        self.source = Path(source)
        self.output = Path(output)
        self.reader = reader
        self.writer = writer
        self.notifier = notifier or LoggingNotifier()
        self.token = token or CancellationToken()
        self.overwrite = overwrite

    def run(self) -> bool:
        """
        Execute the conversion

        Returns:
            True if the output was written
        """
        notifier = self.notifier
        if not self.overwrite and self.output.exists():
            notifier.log_error("Output file already exists: %s", self.output)
            return False

        try:
            notifier.log("Parsing %s...", self.source)
            container = self.reader.read(self.source)
        except ConversionCancelled:
            notifier.log("Conversion cancelled")
            return False
        except (ConversionError, OSError) as e:
            notifier.log_error("Could not read %s", self.source, exc=e)
            return False

        with container:
            try:
                self.token.check()

                notifier.log("Validating project...")
                try:
                    validate(container.project)
                    notifier.log("✓ Project is valid")
                except ValidationError as e:
                    # Validation is advisory, the file is written anyway
                    for problem in e.problems:
                        notifier.log_error("Validation: %s", problem)

                self.token.check()

                notifier.log("Writing %s...", self.output)
                self.writer.write(container, self.output)
            except ConversionCancelled:
                notifier.log("Conversion cancelled")
                return False
            except (ConversionError, OSError) as e:
                notifier.log_error("Could not write %s", self.output, exc=e)
                return False

        notifier.log("✓ Conversion finished: %s", self.output)
        return True


def is_reaper_file(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in REAPER_EXTENSIONS


def is_dawproject_file(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() == DAWPROJECT_EXTENSION


def output_path_for(source: Union[str, Path]) -> Path:
    """
    Destination next to the source with the extension of the other format

    Raises:
        ValueError: The extension of the source is not supported
    """
    source = Path(source)
    if is_reaper_file(source):
        return source.with_suffix(DAWPROJECT_EXTENSION)
    if is_dawproject_file(source):
        return source.with_suffix(REAPER_EXTENSIONS[0])
    raise ValueError(f"Unsupported file type: {source.suffix}")


def create_task(source: Union[str, Path], output: Union[str, Path, None] = None,
                settings: Optional[ConverterSettings] = None, notifier: Optional[Notifier] = None,
                token: Optional[CancellationToken] = None) -> ConversionTask:
    """
    Create the task for a source file

    Args:
        source: .rpp, .rpp-bak or .dawproject file
        output: Destination, next to the source if not given
        settings: Converter options
        notifier: Receives progress and errors
        token: Cancels the conversion

    Returns:
        The task, ready to run

    Raises:
        ValueError: The extension of the source is not supported
    """
    # Imported here, the converters depend on core
    from parsers.dawproject_parser import DawProjectParser
    from parsers.reaper_parser import ReaperParser
    from writers.dawproject_writer import DawProjectWriter
    from writers.reaper_writer import ReaperWriter

    settings = settings or ConverterSettings()
    notifier = notifier or LoggingNotifier()
    token = token or CancellationToken()
    output = Path(output) if output else output_path_for(source)

    if is_reaper_file(source):
        reader = ReaperParser(settings, notifier, token)
        writer = DawProjectWriter()
    elif is_dawproject_file(source):
        reader = DawProjectParser()
        writer = ReaperWriter(notifier, token)
    else:
        raise ValueError(f"Unsupported file type: {Path(source).suffix}")

    logger.debug(f"{type(reader).__name__} -> {type(writer).__name__}")
    return ConversionTask(source, output, reader, writer, notifier, token, settings.overwrite)


__all__ = [
    'ConversionTask',
    'is_reaper_file',
    'is_dawproject_file',
    'output_path_for',
    'create_task',
]
