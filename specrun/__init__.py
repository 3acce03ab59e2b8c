"""SpecRun: turn OpenAPI / Swagger documents into callable HTTP tools."""

from __future__ import annotations

__version__ = "1.0.0"
