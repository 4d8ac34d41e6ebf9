from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Authentication endpoints (register, login, refresh)
    path('api/auth/', include('accounts.urls')),

    # Profiles and received reviews
    path('api/users/', include('accounts.user_urls')),

    # Rides, membership, chat history and reviews (all under /api/rides/)
    path('api/rides/', include('rides.urls')),
    path('api/rides/', include('chat.urls')),
    path('api/rides/', include('reviews.urls')),
]

# Serve media files in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
