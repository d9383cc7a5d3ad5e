"""
Django settings for the storefront platform - Base Configuration
Ledger and catalog datastores, payment-session checkout, loyalty and promotions.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS: list[str] = [
    'rest_framework',
]

LOCAL_APPS: list[str] = [
    'apps.common',
    'apps.users',
    'apps.products',
    'apps.promotions',
    'apps.orders',
    'apps.billing',
    'apps.integrations',  # 🔌 Payment provider webhooks & fulfillment
    'apps.catalog',       # 📚 Wishlist, feedback & profile shadow (catalog store)
    'apps.api',
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    'apps.common.middleware.RequestIDMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# ===============================================================================
# DATABASE CONFIGURATION (ledger + catalog store)
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    # Ledger: users, products, promotions, orders
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'storefront'),
        'USER': os.environ.get('DB_USER', 'storefront'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'development_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
        'CONN_MAX_AGE': 60,  # Database connection pooling
        'OPTIONS': {
            'application_name': 'storefront_ledger',
        },
    },
    # Catalog store: wishlist, feedback, customer profile shadow
    'catalog': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('CATALOG_DB_NAME', 'storefront_catalog'),
        'USER': os.environ.get('CATALOG_DB_USER', os.environ.get('DB_USER', 'storefront')),
        'PASSWORD': os.environ.get('CATALOG_DB_PASSWORD', os.environ.get('DB_PASSWORD', 'development_password')),
        'HOST': os.environ.get('CATALOG_DB_HOST', os.environ.get('DB_HOST', 'localhost')),
        'PORT': os.environ.get('CATALOG_DB_PORT', os.environ.get('DB_PORT', '5432')),
        'CONN_MAX_AGE': 60,
        'OPTIONS': {
            'application_name': 'storefront_catalog',
        },
    },
}

DATABASE_ROUTERS = ['apps.common.routers.CatalogRouter']

# ===============================================================================
# AUTHENTICATION & AUTHORIZATION
# ===============================================================================

AUTH_USER_MODEL = 'users.User'

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
        'OPTIONS': {
            'min_length': 10,
        }
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Argon2 first; PBKDF2 kept so older hashes still verify
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.Argon2PasswordHasher',
    'django.contrib.auth.hashers.PBKDF2PasswordHasher',
    'django.contrib.auth.hashers.PBKDF2SHA1PasswordHasher',
]

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===============================================================================
# CACHE CONFIGURATION
# ===============================================================================

# Shared by DRF throttles and django-ratelimit; Redis in production
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storefront-cache',
    }
}

# ===============================================================================
# SESSION & COOKIE SETTINGS
# ===============================================================================

SESSION_ENGINE = 'django.contrib.sessions.backends.db'
SESSION_COOKIE_AGE = 86400  # 24 hours
SESSION_COOKIE_HTTPONLY = True
# Note: SESSION_COOKIE_SECURE = True set in prod.py

# CSRF settings
CSRF_COOKIE_HTTPONLY = True
CSRF_TRUSTED_ORIGINS: list[str] = []
# Note: CSRF_COOKIE_SECURE = True set in prod.py

# ===============================================================================
# ADDITIONAL SECURITY SETTINGS
# ===============================================================================

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# Webhook payloads are small; anything larger is rejected before parsing
DATA_UPLOAD_MAX_MEMORY_SIZE = 2621440  # 2.5MB

# ===============================================================================
# DJANGO REST FRAMEWORK
# ===============================================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_THROTTLE_RATES': {
        'checkout': '30/min',
        'promotion_apply': '60/min',
        'feedback': '10/min',
    },
    'COERCE_DECIMAL_TO_STRING': True,
}

# ===============================================================================
# RATE LIMITING CONFIGURATION 🔒
# ===============================================================================

# Cache backend for django-ratelimit (webhook endpoint)
RATELIMIT_USE_CACHE = 'default'
RATELIMIT_ENABLE = True

# ===============================================================================
# STOREFRONT BUSINESS CONFIGURATION
# ===============================================================================

STOREFRONT_CURRENCY = os.environ.get('STOREFRONT_CURRENCY', 'usd')

# Single-use-per-user welcome code
WELCOME_PROMOTION_CODE = os.environ.get('WELCOME_PROMOTION_CODE', 'WELCOME10')

# Percent discount carried by WISH-/CAT- personalized codes
PERSONALIZED_DISCOUNT_PERCENT = os.environ.get('PERSONALIZED_DISCOUNT_PERCENT', '10')

# Payment-session fulfillment retries on transient database errors
FULFILLMENT_MAX_ATTEMPTS = int(os.environ.get('FULFILLMENT_MAX_ATTEMPTS', '3'))
FULFILLMENT_RETRY_BASE_DELAY = float(os.environ.get('FULFILLMENT_RETRY_BASE_DELAY', '0.1'))

# ===============================================================================
# EXTERNAL INTEGRATIONS
# ===============================================================================

DEFAULT_PAYMENT_GATEWAY = os.environ.get('DEFAULT_PAYMENT_GATEWAY', 'stripe')

# Stripe settings
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')
STRIPE_WEBHOOK_TOLERANCE = int(os.environ.get('STRIPE_WEBHOOK_TOLERANCE', '300'))

# Hosted checkout redirect targets
CHECKOUT_SUCCESS_URL = os.environ.get(
    'CHECKOUT_SUCCESS_URL', 'http://localhost:3001/order-success?session_id={CHECKOUT_SESSION_ID}'
)
CHECKOUT_CANCEL_URL = os.environ.get('CHECKOUT_CANCEL_URL', 'http://localhost:3001/cart')

# ===============================================================================
# LOGGING CONFIGURATION
# ===============================================================================

LOGGING: dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message} [{request_id}]',
            'style': '{',
        },
    },
    'filters': {
        'add_request_id': {
            '()': 'apps.common.logging.RequestIDFilter',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
            'filters': ['add_request_id'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

# SECRET_KEY validation for production security
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY')
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings
    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. "
        "Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2
    )
    SECRET_KEY = 'django-insecure-dev-key-only-change-in-production-or-tests'  # noqa: S105

# Validate SECRET_KEY security in production (checked in prod.py)
def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith('django-insecure-'):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Generate a secure key with django.core.management.utils.get_random_secret_key()"
        )
