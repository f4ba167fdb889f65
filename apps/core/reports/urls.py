from django.urls import path

from .views import dashboard, report_list

urlpatterns = [
    path('dashboard/', dashboard, name='dashboard'),
    path('reports/', report_list, name='report_list'),
]
