"""URL configuration.

The vault engine exposes no HTTP API of its own, only the admin site.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
