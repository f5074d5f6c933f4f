# ==================== NOTIFICATIONS/VIEWS.PY ====================
from rest_framework import viewsets, mixins, permissions
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from .models import ChangeEvent, Notification
from .serializers import ChangeEventSerializer, NotificationSerializer
from .services import NotificationService

# Upper bound on events returned per poll
CHANGES_PAGE_SIZE = 200


class NotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """The signed-in user's notifications"""
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['type', 'read']

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user)

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        if not notification.read:
            notification.read = True
            notification.save(update_fields=['read'])
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        updated = NotificationService.mark_all_read(request.user)
        return Response({'marked_read': updated})

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        return Response({'unread_count': NotificationService.unread_count(request.user)})


class ChangeEventViewSet(viewsets.ViewSet):
    """Change-notification stream for live availability refresh

    Query params: after (cursor of the last event seen), space (optional)

    Events are kept for CHANGE_EVENT_RETENTION_HOURS. Ids are assigned before
    commit, so an event can land below a cursor already handed out and never
    be returned. Clients re-read parking-spaces/{id}/spots/ on reconnect, when
    ``oldest`` is past their cursor, and every few minutes while open.

    Example: /api/v1/changes/?after=120&space=3
    """
    permission_classes = [permissions.AllowAny]

    def list(self, request):
        try:
            after = int(request.query_params.get('after', 0))
            space = int(request.query_params['space']) if request.query_params.get('space') else None
        except ValueError:
            raise ValidationError('Cursor and space must be integers.')

        events = ChangeEvent.objects.all()
        if space is not None:
            events = events.filter(parking_space_id=space)
        oldest = events.values_list('id', flat=True).order_by('id').first()
        events = list(events.filter(id__gt=after)[:CHANGES_PAGE_SIZE])

        return Response({
            'cursor': events[-1].id if events else after,
            'oldest': oldest,
            'events': ChangeEventSerializer(events, many=True).data,
        })
