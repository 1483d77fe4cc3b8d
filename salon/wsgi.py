"""
WSGI config for the Salon admin system.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'salon.settings.production')

application = get_wsgi_application()
