"""Disk usage analysis: parallel scanning, ignore rules, mounted devices and JSON reports."""

__version__ = "5.0.0"
__all__ = ["analyzer", "common", "device", "items", "report"]