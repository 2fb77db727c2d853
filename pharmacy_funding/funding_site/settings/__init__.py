# funding_site/settings/__init__.py
"""
PATH: funding_site/settings/__init__.py

Settings package entrypoint.

We intentionally do NOT import dev/prod here to avoid accidental environment coupling.
Use DJANGO_SETTINGS_MODULE to select:
- funding_site.settings.dev   (local development + tests)
- funding_site.settings.prod  (production)
"""
