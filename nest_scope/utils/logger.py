"""Terminal-safe output and the analyzer output log.

Maps the icons used in hover cards and CLI tables to ASCII and decides, per
output stream, whether that mapping is needed.
`OutputLog` is the line-oriented log every analysis component writes to.
"""
import codecs
import locale
import sys
from collections import deque
from typing import Deque, List, Optional


# ASCII stand-ins for the icons nest-scope prints
ICON_MAP = {
    # Symbol kinds
    '🔷': '[C]',
    '🔹': '[m]',
    '🔸': '[f]',
    '⚡': '[fn]',
    '💉': '[I]',
    '🎮': '[Ctl]',
    '📦': '[Mod]',
    '•': '*',

    # Listing icons
    '📄': '[file]',
    '📋': '[list]',
    '🔍': '[search]',
    '👀': '[watch]',

    # Status icons
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',

    # Punctuation
    '→': '->',
    '←': '<-',
    '—': '-',
    '…': '...',
}


def stream_encoding(stream=None) -> str:
    """Encoding `stream` writes with (stdout by default).

    Streams that do not declare one, such as captured or in-memory text
    buffers, fall back to the locale's preferred encoding.
    """
    if stream is None:
        stream = sys.stdout
    encoding = getattr(stream, 'encoding', None)
    if encoding:
        return encoding
    return locale.getpreferredencoding(False) or 'ascii'


def supports_unicode(stream=None) -> bool:
    """True if hover-card and table icons can be written to `stream` as-is."""
    try:
        return codecs.lookup(stream_encoding(stream)).name == 'utf-8'
    except LookupError:
        return False


def strip_icons(text: str, markup: bool = False) -> str:
    """Unconditionally replace every known icon with its ASCII form.

    With `markup`, brackets in the replacements are escaped so rich does not
    read `[m]` as a style tag.
    """
    for unicode_char, ascii_replacement in ICON_MAP.items():
        if markup:
            ascii_replacement = ascii_replacement.replace("[", r"\[")
        text = text.replace(unicode_char, ascii_replacement)
    return text


class OutputLog:
    """Line-oriented log shared by the analysis components.

    Every line is tagged with the component that wrote it, kept in a bounded
    history (newest last) and, when verbose, echoed to stderr through the
    safe console.
    """

    def __init__(self, verbose: bool = False, history: int = 500, console=None):
        """Initialize the log.

        Args:
            verbose: Echo every line to stderr
            history: Number of lines to retain
            console: Console to echo through (defaults to a stderr SafeConsole)
        """
        self.verbose = verbose
        self._lines: Deque[str] = deque(maxlen=history)
        self._console = console

    def append_line(self, component: str, message: str):
        """Record one line, tagged with the writing component."""
        line = f"[{component}] {message}"
        self._lines.append(line)
        if self.verbose:
            self._echo(line)

    def _echo(self, line: str):
        if self._console is None:
            # safe_console imports this module
            from .safe_console import SafeConsole
            self._console = SafeConsole(stderr=True)
        self._console.echo(line)

    @property
    def lines(self) -> List[str]:
        """Retained lines, oldest first."""
        return list(self._lines)

    def find(self, fragment: str) -> Optional[str]:
        """Return the newest retained line containing `fragment`, if any."""
        for line in reversed(self._lines):
            if fragment in line:
                return line
        return None
