from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, viewsets
from rest_framework.permissions import IsAuthenticated

from .filters import AuditLogFilter
from .models import AuditLog
from .permissions import HasPermission
from .serializers import AuditLogSerializer


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Audit trail (read-only)."""

    queryset = AuditLog.objects.select_related('actor')
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_class = AuditLogFilter
    search_fields = ['actor_email', 'entity_type', 'record_id']
    ordering_fields = ['timestamp', 'action', 'entity_type']
    ordering = ['-timestamp']

    required_permissions = {
        'list': ['audit.view'],
        'retrieve': ['audit.view'],
    }
