"""Configuration module."""

from lvgo.config.constants import DEFAULTS, Defaults
from lvgo.config.settings import NodeOption, Settings, get_settings

__all__ = ["DEFAULTS", "Defaults", "NodeOption", "Settings", "get_settings"]
