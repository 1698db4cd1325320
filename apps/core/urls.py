# apps/core/urls.py

from django.urls import path
from . import views

app_name = 'core'

urlpatterns = [
    # === AUTHENTICATION ===
    path('api/auth/register', views.register_view, name='register'),
    path('api/auth/login', views.login_view, name='login'),
    path('api/auth/logout', views.logout_view, name='logout'),
    path('api/auth/me', views.me_view, name='me'),
    path('api/auth/password', views.change_password_view, name='change_password'),

    # === MONITORING ===
    path('health', views.health_check, name='health'),
]
