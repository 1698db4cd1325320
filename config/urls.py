# config/urls.py

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Applications
    path('', include('apps.core.urls')),
    path('', include('apps.board.urls')),
]

# Admin titles
admin.site.site_header = 'Kanban Board Admin'
admin.site.site_title = 'Kanban Board'
admin.site.index_title = 'System Administration'
