# funding_site/asgi.py
"""
PATH: funding_site/asgi.py

ASGI config for funding_site project.
Defaults to dev settings unless DJANGO_SETTINGS_MODULE is set externally.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    os.getenv("DJANGO_SETTINGS_MODULE", "funding_site.settings.dev"),
)

application = get_asgi_application()
