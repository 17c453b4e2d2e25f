"""Bulk CSV / Sheet importer for the HubSpot CRM API."""

__version__ = "0.1.0"
