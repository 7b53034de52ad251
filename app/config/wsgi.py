"""
WSGI config for the escrow marketplace service.

Provided as a fallback for traditional deployment options; the service
primarily runs under ASGI via Uvicorn.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
