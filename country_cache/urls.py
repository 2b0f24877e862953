"""
URL configuration for country_cache project.

Everything is served by the ``countries`` app:
    /countries, /countries/refresh, /countries/image,
    /countries/<name>, /status
"""
import logging

from django.urls import path, include
from django.http import JsonResponse

logger = logging.getLogger('countries.http')

urlpatterns = [
    path('', include('countries.urls')),
]


def custom_404(request, exception):
    return JsonResponse({"error": "Endpoint not found, try /countries or /status"}, status=404)


def custom_500(request):
    logger.error("Unhandled error serving %s %s", request.method, request.path)
    return JsonResponse({"error": "Internal server error"}, status=500)


handler404 = "country_cache.urls.custom_404"
handler500 = "country_cache.urls.custom_500"
