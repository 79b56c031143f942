"""
Disputes app configuration.
Handles dispute opening and admin rulings.
"""
from django.apps import AppConfig


class DisputesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.disputes'
    verbose_name = 'Disputes'
