from django.urls import path

from tracksub.users.api.views import PasswordChangeView
from tracksub.users.api.views import ProfileView
from tracksub.users.api.views import RegisterView
from tracksub.users.api.views import UserStatsView

urlpatterns = [
    path("auth/register/", RegisterView.as_view(), name="register"),
    path("users/me/", ProfileView.as_view(), name="user-me"),
    path("users/me/password/", PasswordChangeView.as_view(), name="user-password"),
    path("users/me/stats/", UserStatsView.as_view(), name="user-stats"),
]
