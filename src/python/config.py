#!/usr/bin/env python3
"""
Configuration module for mail-to-vtodo.
Reads configuration from config.ini file.
"""

import os
import re
import configparser
from pathlib import Path
from typing import Any, NamedTuple, Optional, List

DEFAULT_HTML_CMD = 'w3m -T text/html %s'

MEDIA_TYPE_RE = re.compile(r'^[\w.+-]+/[\w.+-]+$')


class ConversionOptions(NamedTuple):
    """Settings for a single conversion run."""
    calendar_path: Path
    email_file: str
    preferred_type: str = 'text/plain'
    html_cmd: str = DEFAULT_HTML_CMD
    html_timeout: float = 0
    verbose: bool = False


def validate_values(preferred_type: str, html_cmd: str, html_timeout: Any) -> List[str]:
    """Return a list of problems with the conversion settings."""
    errors: List[str] = []

    if not MEDIA_TYPE_RE.match(preferred_type or ''):
        errors.append(f"[vtodo] type must be a media type like 'text/plain', but got '{preferred_type}'")

    if html_cmd and html_cmd.count('%s') != 1:
        errors.append(f"[vtodo] html_cmd must contain exactly one '%s' placeholder, but got '{html_cmd}'")

    try:
        if float(html_timeout) < 0:
            errors.append("[vtodo] html_timeout must not be negative")
    except (TypeError, ValueError):
        errors.append(f"[vtodo] html_timeout must be a number of seconds, but got '{html_timeout}'")

    return errors


class MailConfig:
    """Configuration manager for mail-to-vtodo."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, searches standard locations.
        """
        self.config = configparser.ConfigParser(interpolation=None)
        self.config_path = self._find_config_file(config_path)
        self._load_config()
        self._apply_defaults()

    def validate(self) -> None:
        """
        Validate the values stored in the configuration file alone.
        Raises ValueError if configuration is invalid.

        get_options() checks the values after command-line overrides.
        """
        errors = validate_values(self.get_type(),
                                 self.get('vtodo', 'html_cmd', fallback=''),
                                 self.get('vtodo', 'html_timeout', fallback='0'))
        if errors:
            raise ValueError("Configuration validation failed:\n- " + "\n- ".join(errors))

    def _find_config_file(self, config_path: Optional[str] = None) -> Optional[Path]:
        """
        Find configuration file in standard locations.

        Search order:
        1. Explicitly provided path
        2. MAIL_VTODO_CONFIG environment variable
        3. ./config.ini (current directory)
        4. ~/.config/mail-to-vtodo/config.ini
        5. /etc/mail-to-vtodo/config.ini

        Returns:
            Path to config file if found, None otherwise.
        """
        if config_path:
            path = Path(config_path).expanduser()
            if path.exists():
                return path

        env_path = os.environ.get('MAIL_VTODO_CONFIG')
        if env_path:
            path = Path(env_path).expanduser()
            if path.exists():
                return path

        search_paths = [
            Path('./config.ini'),
            Path('~/.config/mail-to-vtodo/config.ini').expanduser(),
            Path('/etc/mail-to-vtodo/config.ini')
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self):
        """Load configuration from file."""
        if self.config_path and self.config_path.exists():
            self.config.read(self.config_path)

    def _apply_defaults(self):
        """Apply default values for missing configuration."""
        defaults = {
            'paths': {
                'calendar': ''
            },
            'vtodo': {
                'type': 'text/plain',
                'html_cmd': DEFAULT_HTML_CMD,
                'html_timeout': '0'
            }
        }

        for section, options in defaults.items():
            if not self.config.has_section(section):
                self.config.add_section(section)
            for option, value in options.items():
                if not self.config.has_option(section, option):
                    self.config.set(section, option, value)

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """
        Get configuration value.

        Args:
            section: Configuration section name.
            option: Option name within section.
            fallback: Default value if option not found.

        Returns:
            Configuration value as string.
        """
        return self.config.get(section, option, fallback=fallback)

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get configuration value as float."""
        return self.config.getfloat(section, option, fallback=fallback)

    def getpath(self, section: str, option: str, fallback: str = '') -> Optional[Path]:
        """
        Get configuration value as Path, expanding ~ and environment variables.

        Returns:
            Expanded Path object, or None if the value is empty.
        """
        value = self.get(section, option, fallback=fallback)
        if not value:
            return None

        value = os.path.expandvars(value)
        return Path(value).expanduser()

    def get_calendar_path(self) -> Optional[Path]:
        """Get target calendar directory, if configured."""
        return self.getpath('paths', 'calendar')

    def get_type(self) -> str:
        """Get preferred body media type."""
        return self.get('vtodo', 'type', fallback='text/plain').strip().lower()

    def get_html_cmd(self) -> str:
        """Get HTML render command template (empty disables rendering)."""
        return self.get('vtodo', 'html_cmd', fallback=DEFAULT_HTML_CMD).strip()

    def get_html_timeout(self) -> float:
        """Get HTML render timeout in seconds (0 means no limit)."""
        return self.getfloat('vtodo', 'html_timeout', fallback=0.0)

    def get_options(self, calendar_path: Optional[str] = None, email_file: str = '-',
                    preferred_type: Optional[str] = None, html_cmd: Optional[str] = None,
                    html_timeout: Optional[float] = None, verbose: bool = False) -> ConversionOptions:
        """
        Build options for one run. Explicit arguments override file values.

        Raises:
            ValueError: if no calendar directory is known or a value is invalid.
        """
        if calendar_path:
            path = Path(os.path.expandvars(calendar_path)).expanduser()
        else:
            path = self.get_calendar_path()
        if path is None:
            raise ValueError("Calendar path is required (--path or [paths] calendar)")

        if preferred_type is None:
            preferred_type = self.get_type()
        if html_cmd is None:
            html_cmd = self.get_html_cmd()
        if html_timeout is None:
            html_timeout = self.get('vtodo', 'html_timeout', fallback='0')

        errors = validate_values(preferred_type, html_cmd, html_timeout)
        if errors:
            raise ValueError("Invalid options:\n- " + "\n- ".join(errors))

        return ConversionOptions(
            calendar_path=path,
            email_file=email_file,
            preferred_type=preferred_type.strip().lower(),
            html_cmd=html_cmd,
            html_timeout=float(html_timeout),
            verbose=verbose,
        )

    def __str__(self) -> str:
        """String representation of configuration."""
        if self.config_path:
            return f"MailConfig(config_file={self.config_path})"
        else:
            return "MailConfig(using defaults)"


_config_instance = None

def get_config(config_path: Optional[str] = None) -> MailConfig:
    """
    Get configuration instance (singleton).

    Args:
        config_path: Path to config file (only used on first call).

    Returns:
        MailConfig instance.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = MailConfig(config_path)
    return _config_instance


if __name__ == '__main__':
    config = get_config()
    print(f"Configuration loaded from: {config.config_path or 'defaults'}")
    print("\nCurrent configuration:")

    for section in config.config.sections():
        print(f"\n[{section}]")
        for option in config.config.options(section):
            print(f"  {option} = {config.get(section, option)}")
