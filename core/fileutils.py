"""
File helpers

Output files are written to a temporary file in the destination folder
first and moved to the final name only if writing succeeded.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)


@contextmanager
def atomic_output(target: Union[str, Path]) -> Iterator[Path]:
    """
    Provide a temporary path which replaces the target on success

    Args:
        target: Final destination file

    Yields:
        Path of the temporary file to write to

    On any exception the temporary file is removed and the target is left
    untouched.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f'.{target.name}.', suffix='.tmp', delete=False) as tmp:
        tmp_path = Path(tmp.name)

    try:
        yield tmp_path
        os.replace(tmp_path, target)
        logger.debug(f"Moved {tmp_path.name} to {target}")
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def name_without_type(path: Union[str, Path]) -> str:
    """File name without the extension"""
    return Path(path).stem


__all__ = [
    'atomic_output',
    'name_without_type',
]
