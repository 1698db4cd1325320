# config/asgi.py

import os
from django.core.asgi import get_asgi_application

# Django settings
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

application = get_asgi_application()
