#!/usr/bin/env python3
"""
Convert an email file to an iCalendar VTODO (.ics) task.
"""

import sys
import os
import email
import argparse
from datetime import datetime, timezone
from email.message import Message
from email.utils import parsedate_to_datetime
from pathlib import Path
import html

# Add src/python to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from config import ConversionOptions, get_config
from html_renderer import HtmlRenderer, get_html_renderer
from vtodo import TodoRecord, compose_vtodo, get_uuid, subject_decode, unfold_header


class EmailToVtodo:
    def __init__(self, options: ConversionOptions, renderer: HtmlRenderer = None):
        self.options = options
        self.diagnostics = []
        self.renderer = renderer or get_html_renderer(options, report=self.debug)

    def debug(self, message: str):
        """Record a diagnostic, printing it in verbose mode."""
        self.diagnostics.append(message)
        if self.options.verbose:
            print(f"DEBUG: {message}", file=sys.stderr)

    def read_email(self, source=None) -> Message:
        """
        Read email from a file, or stdin when source is '-' or empty.

        Unreadable or unparsable input yields an empty message.
        """
        try:
            if source and source != '-':
                with open(source, 'rb') as f:
                    raw = f.read()
            else:
                raw = sys.stdin.buffer.read()
            msg = email.message_from_bytes(raw)
        except Exception as e:
            self.debug(f"Cannot read email {source}: {e}")
            return Message()

        for defect in msg.defects:
            self.debug(f"Message defect: {defect.__class__.__name__}")
        return msg

    def part_text(self, part: Message) -> str:
        """Decode a part's payload to text using its declared charset."""
        try:
            payload = part.get_payload(decode=True)
        except Exception as e:
            self.debug(f"Cannot decode {part.get_content_type()} part: {e}")
            return ""
        if not payload:
            return ""

        charset = part.get_content_charset() or 'utf-8'
        try:
            return payload.decode(charset, errors='replace')
        except LookupError:
            self.debug(f"Unknown charset '{charset}', using utf-8")
            return payload.decode('utf-8', errors='replace')

    def extract_description(self, msg: Message) -> str:
        """
        Pick the description text from the message parts.

        The first text/plain or text/html part seen is the default. A part of
        the preferred type, if one exists, replaces it. Newlines come back as
        the two-character sequence backslash-n.
        """
        body = ""
        plain = ""
        html_body = ""

        for part in msg.walk():
            content_type = part.get_content_type()
            if content_type == "text/html":
                html_body = self.renderer.render(self.part_text(part))
                if not body:
                    body = html_body
            elif content_type == "text/plain":
                plain = self.part_text(part)
                if not body:
                    body = plain

        if html_body and self.options.preferred_type == "text/html":
            body = html_body
        elif plain and self.options.preferred_type == "text/plain":
            body = plain

        return body.replace('\r\n', '\n').replace('\n', '\\n')

    def raw_header(self, msg: Message, name: str) -> str:
        """Header value as stored, with raw 8-bit bytes read as UTF-8."""
        for key, value in msg.raw_items():
            if key.lower() == name.lower():
                if not isinstance(value, str):
                    return str(value)
                # the parser keeps undecodable bytes as surrogate escapes
                return value.encode('utf-8', 'surrogateescape').decode('utf-8', errors='replace')
        return ''

    def extract_summary(self, msg: Message) -> str:
        subject = unfold_header(self.raw_header(msg, 'Subject'))
        return html.escape(subject_decode(subject))

    def get_dtstamp(self, msg: Message):
        """Return the message Date as a datetime, or None."""
        date_str = msg.get('Date')
        if not date_str:
            self.debug("Message has no Date header")
            return None
        try:
            dt = parsedate_to_datetime(str(date_str))
            if dt.tzinfo is not None:
                dt = dt.astimezone(timezone.utc)
            return dt
        except (TypeError, ValueError, OverflowError) as e:
            self.debug(f"Cannot parse Date header '{date_str}': {e}")
            return None

    def convert_to_todo(self, msg: Message) -> TodoRecord:
        """Build the to-do record for a message."""
        uuid = get_uuid()
        self.debug(f"Task UID: {uuid}")
        return TodoRecord(
            uuid=uuid,
            summary=self.extract_summary(msg),
            description=self.extract_description(msg),
            dtstamp=self.get_dtstamp(msg),
            created=datetime.now(timezone.utc),
        )

    def write_vtodo(self, todo: TodoRecord) -> Path:
        """Write the VTODO to <calendar_path>/<uid>.ics."""
        file_name = Path(self.options.calendar_path) / f"{todo.uuid}.ics"
        content = compose_vtodo(todo).encode('utf-8')
        try:
            fd = os.open(file_name, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
        except OSError as e:
            raise RuntimeError(f"Cannot create todo file {file_name}: {e}") from e
        self.debug(f"Wrote {len(content)} bytes to {file_name}")
        return file_name

    def run(self) -> int:
        """Main conversion process."""
        try:
            msg = self.read_email(self.options.email_file)
            todo = self.convert_to_todo(msg)
            file_name = self.write_vtodo(todo)
            print(file_name)
            return 0
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1


def main():
    parser = argparse.ArgumentParser(description='Convert an email to an iCalendar VTODO task')
    parser.add_argument('-p', '--path', help='Path to calendar folder')
    parser.add_argument('-f', '--email-file', required=True,
                        help="Path to email file ('-' for stdin)")
    parser.add_argument('-t', '--type', help='Preferred body mime type (default: text/plain)')
    parser.add_argument('-H', '--html-cmd',
                        help="HTML render command, '%%s' is the file path (default: 'w3m -T text/html %%s'); "
                             "empty disables rendering")
    parser.add_argument('--html-timeout', type=float,
                        help='Seconds to wait for the HTML render command (default: no limit)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show verbose debug information')
    parser.add_argument('--config', help='Path to config file')

    args = parser.parse_args()

    try:
        options = get_config(args.config).get_options(
            calendar_path=args.path,
            email_file=args.email_file,
            preferred_type=args.type,
            html_cmd=args.html_cmd,
            html_timeout=args.html_timeout,
            verbose=args.verbose,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    converter = EmailToVtodo(options)
    sys.exit(converter.run())

if __name__ == '__main__':
    main()
