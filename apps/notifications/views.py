"""Notification ViewSets"""

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, permissions, viewsets
from rest_framework.decorators import action

from apps.core.exceptions import NotFoundError
from apps.core.permissions import IsAdminOrReadOnly
from apps.core.response import success_response

from .filters import NotificationFilter, NotificationTemplateFilter
from .models import Notification, NotificationTemplate
from .serializers import NotificationSerializer, NotificationTemplateSerializer
from .services import notification_service


class NotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """The caller's notifications. Expired notifications are hidden."""
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = NotificationFilter
    search_fields = ['title', 'message']
    ordering_fields = ['is_read', 'priority', 'created_at']
    ordering = ['-created_at']

    def get_queryset(self):
        now = timezone.now()
        return (
            Notification.objects.filter(recipient=self.request.user)
            .exclude(expires_at__lte=now)
            .select_related('sender')
        )

    @action(detail=True, methods=['post'], url_path='read')
    def mark_read(self, request, pk=None):
        if not notification_service.mark_as_read(pk, request.user):
            raise NotFoundError('Notification', pk)
        return success_response(data={'status': 'read'})

    @action(detail=False, methods=['post'], url_path='read-all')
    def mark_all_read(self, request):
        return success_response(data={'updated': notification_service.mark_all_as_read(request.user)})

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return success_response(data={'unread_count': notification_service.unread_count(request.user)})


class NotificationTemplateViewSet(viewsets.ModelViewSet):
    """Stored overrides of the built-in notification templates"""
    queryset = NotificationTemplate.objects.all()
    serializer_class = NotificationTemplateSerializer
    permission_classes = [IsAdminOrReadOnly]
    manage_permission = 'notifications.manage'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_class = NotificationTemplateFilter
    search_fields = ['code', 'title']
