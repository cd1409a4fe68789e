"""Registry-driven Google Sheets proxy and bulk import tools."""

__version__ = "1.2.0"
