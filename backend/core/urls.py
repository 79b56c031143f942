from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/accounts/', include('apps.accounts.urls')),
    path('api/marketplace/', include('apps.marketplace.urls')),
    path('api/orders/', include('apps.orders.urls')),
    path('api/disputes/', include('apps.disputes.urls')),

    # API schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
