import os
import shlex
import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import Callable, Optional

from config import ConversionOptions

TEMP_PREFIX = 'email-to-vtodo-'

Reporter = Callable[[str], None]


class HtmlRenderer(ABC):
    """Abstract base class for HTML to text renderers."""
    def __init__(self, report: Optional[Reporter] = None):
        self.report = report

    def _report(self, message: str):
        if self.report:
            self.report(message)

    @abstractmethod
    def render(self, html: str) -> str:
        """Convert an HTML document to plain text."""
        pass


class PassthroughRenderer(HtmlRenderer):
    """Returns HTML untouched; used when no render command is configured."""
    def render(self, html: str) -> str:
        return html


class CmdRenderer(HtmlRenderer):
    """
    Renders HTML by running a shell command on a temporary file.

    The command template holds a single '%s' that is replaced by the
    quoted path of the temporary file. Whatever the command writes to
    stdout is the rendered text. Failures never propagate: a broken
    command yields whatever output it produced, possibly nothing.
    """
    def __init__(self, command: str, timeout: Optional[float] = None,
                 report: Optional[Reporter] = None):
        super().__init__(report)
        if not command:
            raise ValueError("HTML render command is not configured.")
        self.command = command
        self.timeout = timeout or None

    def build_command(self, path: str) -> str:
        return self.command.replace('%s', shlex.quote(path), 1)

    def render(self, html: str) -> str:
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=TEMP_PREFIX)
        except OSError as e:
            self._report(f"Cannot create temporary file: {e}")
            return ""

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(html)
            return self._run(self.build_command(tmp_path))
        except OSError as e:
            self._report(f"Cannot write temporary file {tmp_path}: {e}")
            return ""
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass

    def _run(self, cmd: str) -> str:
        try:
            process = subprocess.run(
                cmd, shell=True, capture_output=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            self._report(f"Command '{cmd}' timed out after {self.timeout} seconds.")
            return self._decode(e.stdout)

        if process.returncode != 0:
            error_message = f"Command '{cmd}' failed with exit code {process.returncode}."
            if process.stderr:
                error_message += f" Stderr: {self._decode(process.stderr).strip()}"
            self._report(error_message)
        return self._decode(process.stdout)

    @staticmethod
    def _decode(output: Optional[bytes]) -> str:
        if not output:
            return ""
        return output.decode('utf-8', errors='replace')


def get_html_renderer(options: ConversionOptions, report: Optional[Reporter] = None) -> HtmlRenderer:
    """Factory function to get the renderer matching the options."""
    if not options.html_cmd:
        return PassthroughRenderer(report)
    return CmdRenderer(options.html_cmd, timeout=options.html_timeout, report=report)
