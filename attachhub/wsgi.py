"""
WSGI config for the attachhub project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'attachhub.settings')

application = get_wsgi_application()
