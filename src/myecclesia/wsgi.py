"""WSGI config for the MyEcclesia project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "myecclesia.settings")

application = get_wsgi_application()
