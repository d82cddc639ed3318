from django.urls import path

from catalog import views

urlpatterns = [
    path(
        "businesses/<int:business_id>/imports/upload/",
        views.upload_catalog_view,
        name="upload_catalog",
    ),
    path(
        "businesses/<int:business_id>/imports/",
        views.catalog_import_logs_view,
        name="catalog_import_logs",
    ),
    path("imports/<int:pk>/undo/", views.undo_catalog_import_view, name="undo_catalog_import"),
]
