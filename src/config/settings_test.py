"""Settings used by the pytest suite.

Supplies the values the production settings refuse to default
(``SECRET_KEY``) and swaps Redis-backed services for in-process ones.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("IDP_JWT_SECRET", "test-identity-provider-secret")
os.environ.setdefault("IDP_ISSUER", "https://idp.test/auth/v1")

from config.settings import *  # noqa: E402,F401,F403
from config.settings import REST_FRAMEWORK  # noqa: E402

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "storefront-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

PAYMENT_GATEWAY_BACKEND = "modules.checkout.payments.SandboxPaymentGateway"

# Throttle counters live in the cache and would leak between tests.
REST_FRAMEWORK = {**REST_FRAMEWORK, "DEFAULT_THROTTLE_CLASSES": []}
