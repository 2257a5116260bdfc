"""
RWA — API URL Configuration
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

router = DefaultRouter()
router.register(r'residents', views.ResidentViewSet, basename='residents')
router.register(r'payments', views.PaymentViewSet, basename='payments')
router.register(r'receipts', views.ReceiptViewSet, basename='receipts')
router.register(r'maintenance-changes', views.MaintenanceChangeLogViewSet,
                basename='maintenance-changes')

urlpatterns = [
    # Auth
    path('auth/login/', views.LoginView.as_view(), name='login'),
    path('auth/me/', views.MeView.as_view(), name='me'),

    # Dashboard
    path('dashboard/', views.DashboardView.as_view(), name='dashboard'),

    path('', include(router.urls)),
]
