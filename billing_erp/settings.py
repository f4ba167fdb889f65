"""
Django settings for billing_erp project.

Scope:
- Student roster with active/inactive status
- Fee structure maintenance
- Monthly invoice generation, payments and waivers
- Settlement, dues reports and fee reminders
"""
import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name, default='False'):
    return os.getenv(name, default).lower() in {'1', 'true', 'yes'}


DEBUG = _env_flag('DJANGO_DEBUG')
SECRET_KEY = os.getenv(
    'DJANGO_SECRET_KEY',
    'change-this-secret-key-in-production-6c1d0b7e4f8a4a2f9e3b5d7c1a9e0f42',
)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
    if host.strip()
]


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'apps.core.users.apps.UsersConfig',
    'apps.core.students.apps.StudentsConfig',
    'apps.core.fees.apps.FeesConfig',
    'apps.core.reports.apps.ReportsConfig',
]


MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]


ROOT_URLCONF = 'billing_erp.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'billing_erp.wsgi.application'


DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv('DJANGO_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('DJANGO_TIME_ZONE', 'Asia/Kathmandu')
USE_I18N = True
USE_TZ = True


STATIC_URL = 'static/'
AUTH_USER_MODEL = 'users.User'


CSRF_COOKIE_SECURE = not DEBUG
SESSION_COOKIE_SECURE = not DEBUG
SECURE_SSL_REDIRECT = _env_flag('DJANGO_SECURE_SSL_REDIRECT')
SECURE_HSTS_SECONDS = int(os.getenv('DJANGO_SECURE_HSTS_SECONDS', '0'))
SECURE_HSTS_INCLUDE_SUBDOMAINS = _env_flag('DJANGO_SECURE_HSTS_INCLUDE_SUBDOMAINS')
SECURE_HSTS_PRELOAD = _env_flag('DJANGO_SECURE_HSTS_PRELOAD')
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')


LOGIN_REDIRECT_URL = '/dashboard/'
LOGOUT_REDIRECT_URL = '/login/'
LOGIN_URL = '/login/'

TEST_RUNNER = 'apps.core.test_runner.InstalledAppsOnlyDiscoverRunner'


EMAIL_BACKEND = os.getenv('DJANGO_EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = os.getenv('DJANGO_DEFAULT_FROM_EMAIL', 'billing@school.local')


SCHOOL_NAME = os.getenv('SCHOOL_NAME', 'Montessori School')
CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', 'रु')

# Due date of generated invoices: N days after issue, or day N of the next month.
INVOICE_DUE_POLICY = os.getenv('INVOICE_DUE_POLICY', 'days_after_issue')
INVOICE_DUE_OFFSET = int(os.getenv('INVOICE_DUE_OFFSET', '15'))
INVOICE_SKIP_EMPTY_FEE_STRUCTURE = _env_flag('INVOICE_SKIP_EMPTY_FEE_STRUCTURE')

AI_SUMMARY_API_KEY = os.getenv('AI_SUMMARY_API_KEY', '')
AI_SUMMARY_MODEL = os.getenv('AI_SUMMARY_MODEL', 'gemini-2.5-flash')
AI_SUMMARY_ENDPOINT = os.getenv(
    'AI_SUMMARY_ENDPOINT',
    'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent',
)
AI_SUMMARY_TIMEOUT_SECONDS = int(os.getenv('AI_SUMMARY_TIMEOUT_SECONDS', '20'))


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
