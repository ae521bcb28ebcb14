"""
URL configuration for the Building Management project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Apps
    path('pdc/', include('apps.pdc.urls')),
]
