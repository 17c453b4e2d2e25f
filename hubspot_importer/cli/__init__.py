"""Command-line interface (``hubspot-import`` / ``python -m hubspot_importer.cli``)."""
