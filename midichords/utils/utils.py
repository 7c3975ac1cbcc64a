import os
import sys


def resource_path(relative_path):
    """Returns the absolute path to a package resource (handles PyInstaller's _MEIPASS)"""
    package_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    base_path = getattr(sys, '_MEIPASS', package_root)
    return os.path.join(base_path, relative_path)


def format_midi_bytes(data, offset: int = 0, length=None) -> str:
    """Hex dump of a byte window for debug logging, e.g. '0x90 0x3c 0x64'."""
    end = len(data) if length is None else offset + length
    return " ".join(f"0x{b & 0xFF:02x}" for b in data[offset:end])
