from django.urls import path
from . import views

app_name = 'pdc'

urlpatterns = [
    path('api/pdcs/', views.pdc_list, name='pdc_list'),
    path('api/pdcs/register/', views.pdc_register, name='pdc_register'),
    path('api/pdcs/<int:pk>/', views.pdc_detail, name='pdc_detail'),
    path('api/pdcs/<int:pk>/transition/', views.pdc_transition, name='pdc_transition'),
    path('api/pdcs/<int:pk>/replacement/', views.pdc_replacement, name='pdc_replacement'),
    path('api/scheduler/run/', views.scheduler_run, name='scheduler_run'),
    path('api/dashboard/', views.dashboard, name='dashboard'),
    path('api/tenants/<str:tenant_ref>/history/', views.tenant_history, name='tenant_history'),
    path('api/banks/', views.bank_names, name='bank_names'),
    path('api/cheque-exists/', views.cheque_exists, name='cheque_exists'),
]
