"""Rich console used for nest-scope's CLI output and verbose log echo.

Kind icons, arrows and bullets are rewritten to ASCII when the stream the
console writes to cannot encode them.
"""
from typing import Any, Optional

from rich.console import Console

from .logger import strip_icons, supports_unicode


class SafeConsole(Console):
    """Console that keeps icon output encodable on its own stream."""

    def __init__(self, *args, ascii_only: Optional[bool] = None, **kwargs):
        """Initialize the console.

        Args:
            ascii_only: Force (True) or suppress (False) icon replacement.
                        By default it is decided from the encoding of the
                        stream being written, stderr when `stderr=True`.

        Remaining arguments are passed through to rich's Console.
        """
        super().__init__(*args, **kwargs)
        if ascii_only is None:
            ascii_only = not supports_unicode(self.file)
        self.ascii_only = ascii_only

    def safe(self, text: str, markup: bool = True) -> str:
        """`text` as this console would write it.

        For strings embedded in renderables (table headers, panel bodies)
        that `print` never sees directly.
        """
        if self.ascii_only:
            return strip_icons(text, markup=markup)
        return text

    def print(self, *objects: Any, **kwargs) -> None:
        if self.ascii_only:
            markup = kwargs.get('markup')
            if markup is None:
                markup = self._markup
            objects = tuple(
                self.safe(obj, markup=markup) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)

    def echo(self, line: str):
        """Write one output-log line verbatim: no markup, no highlighting."""
        self.print(line, markup=False, highlight=False)

    def status(self, status: str, **kwargs):
        if self.ascii_only:
            status = self.safe(status)
            kwargs.setdefault('spinner', 'line')
        return super().status(status, **kwargs)
