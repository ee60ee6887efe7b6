from django.urls import path
from . import views

app_name = 'students'

urlpatterns = [
    # Queries
    path('levels/<int:level_id>/awaiting/', views.awaiting, name='awaiting'),
    path('<int:student_id>/history/', views.student_history, name='history'),

    # Transitions
    path('transitions/renew/', views.renew, name='renew'),
    path('transitions/confirm/', views.confirm_renewal, name='confirm_renewal'),
    path('transitions/promote/', views.promote, name='promote'),
    path('transitions/fail/', views.fail, name='fail'),
    path('transitions/repeat/', views.repeat, name='repeat'),
    path('transitions/withdraw/', views.withdraw, name='withdraw'),
]
