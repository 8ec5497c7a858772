"""Parsers des exports CSV (base actuelle et ancienne plateforme)."""

from frais_courses.parsers.base import BaseParser
from frais_courses.parsers.legacy_export import LegacyExportParser
from frais_courses.parsers.orders import ExportParser

__all__ = ["BaseParser", "ExportParser", "LegacyExportParser"]
