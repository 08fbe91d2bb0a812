"""
Reaper Project Chunk Model

Parses the line-oriented chunk format of Reaper project files into a tree
of Chunk and Node objects and formats such a tree back into text.

    <REAPER_PROJECT 0.1 "6.33/win64" 1681995212
      TEMPO 120 4 4
      <TRACK
        NAME "Lead Synth"
      >
    >

A line starting with '<' opens a chunk, a line holding only '>' closes it.
Every other line is a node: its first token is the name, the remaining
tokens are the parameters. Tokens are separated by whitespace; a token
starting with a double quote, single quote or backtick runs up to the next
occurrence of the same character.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .errors import FormatError

logger = logging.getLogger(__name__)

PROJECT_CHUNK = 'REAPER_PROJECT'
START_OF_CHUNK = '<'
END_OF_CHUNK = '>'
QUOTE_CHARS = ('"', "'", '`')
# Lines of free text (e.g. project notes) are kept verbatim
TEXT_LINE_PREFIX = '|'
INDENT = '  '


@dataclass
class Node:
    """A single line: name plus positional parameters"""
    name: str = ''
    parameters: List[str] = field(default_factory=list)
    line: str = field(default='', compare=False, repr=False)

    def param(self, index: int, default: Optional[str] = None) -> Optional[str]:
        """Get a parameter by position or the default if it is absent"""
        if 0 <= index < len(self.parameters):
            return self.parameters[index]
        return default

    def int_param(self, index: int, default: int = 0) -> int:
        """Get a parameter as integer, default if absent or not a number"""
        return _to_int(self.param(index), default)

    def float_param(self, index: int, default: float = 0.0) -> float:
        """Get a parameter as float, default if absent or not a number"""
        return _to_float(self.param(index), default)

    def int_params(self, default: int = 0) -> List[int]:
        return [_to_int(p, default) for p in self.parameters]

    def float_params(self, default: float = 0.0) -> List[float]:
        return [_to_float(p, default) for p in self.parameters]


@dataclass
class Chunk(Node):
    """A named block with its own parameters and child nodes"""
    children: List[Node] = field(default_factory=list)

    def find(self, name: str) -> Optional[Node]:
        """First direct child with the given name"""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_all(self, name: str) -> List[Node]:
        """All direct children with the given name"""
        return [child for child in self.children if child.name == name]

    def find_chunk(self, name: str) -> Optional['Chunk']:
        """First direct child chunk with the given name"""
        for child in self.children:
            if child.name == name and isinstance(child, Chunk):
                return child
        return None

    def find_chunks(self, name: str) -> List['Chunk']:
        return [child for child in self.children if child.name == name and isinstance(child, Chunk)]

    def find_recursive(self, name: str) -> Optional[Node]:
        """First node with the given name anywhere below this chunk (depth first)"""
        for child in self.children:
            if child.name == name:
                return child
            if isinstance(child, Chunk):
                found = child.find_recursive(name)
                if found is not None:
                    return found
        return None

    def add_node(self, name: str, *parameters) -> Node:
        node = Node(name, [str(p) for p in parameters])
        self.children.append(node)
        return node

    def add_chunk(self, name: str, *parameters) -> 'Chunk':
        chunk = Chunk(name, [str(p) for p in parameters])
        self.children.append(chunk)
        return chunk


def _to_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# ============================================================================
# PARSING
# ============================================================================

def tokenize(line: str, line_number: Optional[int] = None) -> List[str]:
    """
    Split a line into its tokens and remove the quotes

    Args:
        line: Text of one line without the leading '<'
        line_number: Used for error messages

    Returns:
        List of tokens

    Raises:
        FormatError: A quoted token is not terminated
    """
    tokens = []
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char.isspace():
            index += 1
            continue

        if char in QUOTE_CHARS:
            end = line.find(char, index + 1)
            if end == -1:
                raise FormatError(f"Unterminated quoted parameter: {line[index:]}", line_number)
            tokens.append(line[index + 1:end])
            index = end + 1
            continue

        end = index
        while end < length and not line[end].isspace():
            end += 1
        tokens.append(line[index:end])
        index = end
    return tokens


def _fill_node(node: Node, text: str, line_number: int) -> Node:
    node.line = text
    if text.startswith(TEXT_LINE_PREFIX):
        node.name = text
        return node

    tokens = tokenize(text, line_number)
    if tokens:
        node.name = tokens[0]
        node.parameters = tokens[1:]
    return node


def parse_chunk(lines: Iterable[str]) -> Chunk:
    """
    Parse the chunk in the given lines

    Args:
        lines: Text lines (line endings are ignored)

    Returns:
        The chunk with all its children

    Raises:
        FormatError: Unbalanced chunk delimiters, broken quoting or content
            after the end of the chunk
    """
    stack: List[Chunk] = []
    root: Optional[Chunk] = None
    number = 0
    for number, raw in enumerate(lines, start=1):
        text = raw.strip()
        if not text:
            continue

        if root is not None:
            raise FormatError(f"Content after the end of the {root.name} chunk: {text}", number)

        if text == END_OF_CHUNK:
            if not stack:
                raise FormatError("End of chunk without a start", number)
            chunk = stack.pop()
            if not stack:
                root = chunk
            continue

        if text.startswith(START_OF_CHUNK):
            chunk = _fill_node(Chunk(), text[1:], number)
            if stack:
                stack[-1].children.append(chunk)
            stack.append(chunk)
            continue

        if not stack:
            raise FormatError(f"Content outside of a chunk: {text}", number)
        stack[-1].children.append(_fill_node(Node(), text, number))

    if root is not None:
        return root
    if not stack:
        raise FormatError("No chunk found", number)
    raise FormatError(f"Chunk not closed: {stack[-1].name}", number)


def parse_project(lines: List[str]) -> Chunk:
    """
    Parse a Reaper project file

    Args:
        lines: All lines of the project file

    Returns:
        The REAPER_PROJECT root chunk
    """
    first = next((line.strip() for line in lines if line.strip()), '')
    if not first.startswith(START_OF_CHUNK + PROJECT_CHUNK):
        raise FormatError("No Reaper file. Project chunk not found.")

    root = parse_chunk(lines)
    logger.debug(f"Parsed project chunk with {len(root.children)} child nodes")
    return root


# ============================================================================
# FORMATTING
# ============================================================================

def quote(parameter: str) -> str:
    """Quote a parameter if it would not survive tokenizing otherwise"""
    if parameter and not any(c.isspace() for c in parameter) and parameter[0] not in QUOTE_CHARS:
        return parameter

    for char in QUOTE_CHARS:
        if char not in parameter:
            return f"{char}{parameter}{char}"

    # All quote characters are used, Reaper does the same replacement
    return '`' + parameter.replace('`', "'") + '`'


def format_node(node: Node) -> str:
    if node.name.startswith(TEXT_LINE_PREFIX):
        return node.name
    parts = [node.name]
    parts.extend(quote(p) for p in node.parameters if p is not None)
    return ' '.join(parts)


def format_chunk(chunk: Chunk, depth: int = 0) -> List[str]:
    """
    Format a chunk and all of its children

    Args:
        chunk: The chunk to format
        depth: Nesting level, used for the indentation

    Returns:
        Text lines without line endings
    """
    indent = INDENT * depth
    lines = [indent + START_OF_CHUNK + format_node(chunk)]
    for child in chunk.children:
        if isinstance(child, Chunk):
            lines.extend(format_chunk(child, depth + 1))
        else:
            lines.append(indent + INDENT + format_node(child))
    lines.append(indent + END_OF_CHUNK)
    return lines


def format_project(root: Chunk) -> str:
    """Format a complete project, ready to be written to disk"""
    return '\n'.join(format_chunk(root)) + '\n'


__all__ = [
    'Node',
    'Chunk',
    'tokenize',
    'parse_chunk',
    'parse_project',
    'quote',
    'format_node',
    'format_chunk',
    'format_project',
]
