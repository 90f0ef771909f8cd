"""
WSGI config for Tracksub.

Exposes a module-level variable named ``application`` for Django's
development server and any production WSGI deployments.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.production")

application = get_wsgi_application()
