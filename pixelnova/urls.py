from django.urls import include, path
from apps.api.views import SignedMediaView

urlpatterns = [
    path('api/', include('apps.api.urls')),
    path('media/signed/<str:token>/', SignedMediaView.as_view(), name='signed-media'),
]
