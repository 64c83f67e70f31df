"""Example Django application reporting request telemetry to a collector.

Run with:
    uvicorn examples.django_example:application --reload

Then visit:
    http://localhost:8000/           - Root endpoint
    http://localhost:8000/users      - Users endpoint
    http://localhost:8000/error      - Unhandled exception (500)

The collector is described by ``settings.HOUDINI``; without it the
``HOUDINI_*`` environment variables are used. Route templates such as
``users`` are reported in the ``http.request.duration`` metric.
"""

import django
from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse

# Configure Django settings
if not settings.configured:
    settings.configure(
        DEBUG=True,
        ROOT_URLCONF=__name__,
        ALLOWED_HOSTS=["*"],
        SECRET_KEY="example-secret-key-not-for-production",
        MIDDLEWARE=["houdini.adapters.frameworks.django.HoudiniDjangoMiddleware"],
        HOUDINI={
            "dsn": "http://localhost:9000/ingest",
            "service_name": "shop-django",
            "service_version": "1.0.0",
            "logs": {"levels": ["error", "warning"]},
        },
    )
    django.setup()

from django.urls import path  # noqa: E402

from houdini.adapters.frameworks.django import get_collector  # noqa: E402


def root(request: HttpRequest) -> HttpResponse:
    """Root endpoint; the middleware records it automatically."""
    return HttpResponse("Hello! Check your collector for telemetry.")


def users_list(request: HttpRequest) -> JsonResponse:
    """Users endpoint that also attaches the current user to the telemetry."""
    get_collector().set_user_context({"id": "1", "name": "Alice"})
    return JsonResponse(
        {
            "users": [
                {"id": "1", "name": "Alice"},
                {"id": "2", "name": "Bob"},
            ]
        }
    )


def error_demo(request: HttpRequest) -> HttpResponse:
    """Unhandled error, recorded through process_exception."""
    raise ValueError("Intentional error for demonstration")


# URL patterns
urlpatterns = [
    path("", root, name="root"),
    path("users", users_list, name="users"),
    path("error", error_demo, name="error"),
]


# ASGI application for uvicorn
def get_asgi_application():
    from django.core.asgi import get_asgi_application as django_asgi

    return django_asgi()


application = get_asgi_application()
