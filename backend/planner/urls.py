"""
URL configuration for the planner app.
"""

from django.urls import path
from . import views

urlpatterns = [
    path('', views.api_info, name='api-info'),
    path('schedule/', views.schedule_tasks, name='schedule-tasks'),
    path('schedule/day/', views.sessions_for_date, name='sessions-for-date'),
    path('schedule/complete/', views.complete_session, name='complete-session'),
    path('schedule/calendar/', views.calendar_events, name='calendar-events'),
    path('schedule/policy/', views.scheduling_policy, name='scheduling-policy'),
]
