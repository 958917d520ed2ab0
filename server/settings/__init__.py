"""
Settings entry point.

Settings are split into components and environments using
``django-split-settings``. ``DJANGO_ENV`` selects the environment file,
``development`` is the default.
"""

from os import environ

import django_stubs_ext
from split_settings.tools import include, optional

# Allows runtime subscription of generic Django classes
# such as ``admin.ModelAdmin[Model]``.
django_stubs_ext.monkeypatch()

environ.setdefault('DJANGO_ENV', 'development')
_ENV = environ['DJANGO_ENV']

_base_settings = (
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/vault.py',
    # Select the right env:
    'environments/{0}.py'.format(_ENV),
    # Optionally override some settings:
    optional('environments/local.py'),
)

include(*_base_settings)
