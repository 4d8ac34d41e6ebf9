import os
import tempfile

from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

# File-backed so threads and database_sync_to_async workers share one
# database; IMMEDIATE makes concurrent writers queue on the busy timeout
# instead of failing with "database is locked".
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(tempfile.gettempdir(), 'rideshare.sqlite3'),
        'OPTIONS': {
            'timeout': 30,
            'transaction_mode': 'IMMEDIATE',
        },
        'TEST': {
            'NAME': os.path.join(tempfile.gettempdir(), 'rideshare_test.sqlite3'),
        },
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING['root']['level'] = 'WARNING'
