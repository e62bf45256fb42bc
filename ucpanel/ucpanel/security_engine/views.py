"""
REST API views for proxy security
"""

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ucpanel.security_core.actions import JailAction
from ucpanel.security_core.listing import ListQueryMixin
from ucpanel.security_core.models import RuleChain, ProxySecuritySettings, SecurityEvent
from ucpanel.security_guard.jail_manager import JailManager
from ucpanel.security_guard.rule_cache_manager import RuleChainCacheManager

from .enforcement import ActionEnforcer
from .rule_evaluation import RequestInfo, RuleEvaluator
from .serializers import (
    RuleChainSerializer,
    ReorderSerializer,
    EvaluateRequestSerializer,
    JailedIPSerializer,
    JailRequestSerializer,
    SecurityEventSerializer,
    ProxySecuritySettingsSerializer,
)


class RuleChainViewSet(ListQueryMixin, viewsets.ModelViewSet):
    """
    API endpoint for managing rule chains
    """
    queryset = RuleChain.objects.prefetch_related('conditions')
    serializer_class = RuleChainSerializer
    permission_classes = [IsAuthenticated]

    search_fields = ('name', 'description', 'action', 'operator')
    sort_fields = ('name', 'order', 'action', 'operator', 'enabled', 'created_at', 'updated_at')

    @action(detail=True, methods=['post'])
    def toggle(self, request, pk=None):
        """Enable or disable a rule chain"""
        chain = self.get_object()
        chain.enabled = not chain.enabled
        chain.save(update_fields=['enabled', 'updated_at'])
        return Response(self.get_serializer(chain).data)

    @action(detail=False, methods=['post'])
    def reorder(self, request):
        """Assign order 1..n to the given chain ids"""
        serializer = ReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ids = serializer.validated_data['ids']
        with transaction.atomic():
            for position, chain_id in enumerate(ids, start=1):
                RuleChain.objects.filter(pk=chain_id).update(order=position)

        # update() sends no post_save
        RuleChainCacheManager.invalidate_chains()

        chains = self.get_queryset().order_by('order', 'created_at')
        return Response(self.get_serializer(chains, many=True).data)

    @action(detail=False, methods=['post'])
    def evaluate(self, request):
        """Dry-run a sample request against the enabled chains. Nothing is logged or jailed."""
        serializer = EvaluateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        for key in ('user_agent', 'referer', 'domain'):
            data[key] = data.get(key) or None
        request_info = RequestInfo(**data)

        chains = self.get_queryset().filter(enabled=True).order_by('order', 'created_at')
        matches = RuleEvaluator.evaluate_rules(chains, request_info)

        response_action = None
        jail = False
        for match in matches:
            chain_action = ActionEnforcer.resolve_action(match.chain)
            if isinstance(chain_action, JailAction):
                jail = True
            elif chain_action.alters_response and response_action is None:
                response_action = {
                    'chain_id': str(match.chain.id),
                    'action': match.chain.action,
                    'status_code': chain_action.nginx_response_code,
                }

        return Response({
            'proxy_jail_enabled': RuleChainCacheManager.get_settings().proxy_jail_enabled,
            'matches': [
                {
                    'chain_id': str(match.chain.id),
                    'chain_name': match.chain.name,
                    'action': match.chain.action,
                    'order': match.chain.order,
                    'matched_conditions': [str(c.id) for c in match.matched_conditions],
                }
                for match in matches
            ],
            'response': response_action,
            'jail': jail,
        })


class JailViewSet(ListQueryMixin, viewsets.GenericViewSet):
    """
    API endpoint for active jails. Jails are addressed by IP address.
    """
    serializer_class = JailedIPSerializer
    permission_classes = [IsAuthenticated]
    lookup_field = 'ip_address'
    lookup_value_regex = '[^/]+'

    search_fields = ('ip_address', 'reason', 'source')
    sort_fields = ('ip_address', 'source', 'created_at', 'expires_at', 'duration_minutes')

    def get_queryset(self):
        return JailManager.list_jails()

    def create(self, request, *args, **kwargs):
        """Jail an IP manually"""
        serializer = JailRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        duration = data.get('duration_minutes') or RuleChainCacheManager.get_settings().jail_duration_minutes
        jailed = JailManager.jail_ip(data['ip_address'], duration, data['reason'], source='manual')
        return Response(JailedIPSerializer(jailed).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        """Release a jail"""
        if not JailManager.unjail_ip(kwargs[self.lookup_field]):
            return Response(
                {'error': 'IP is not jailed'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'], url_path='release-expired')
    def release_expired(self, request):
        return Response({'released': JailManager.release_expired()})


class SecurityEventViewSet(ListQueryMixin, viewsets.ReadOnlyModelViewSet):
    """
    API endpoint for viewing security events (read-only)
    """
    serializer_class = SecurityEventSerializer
    permission_classes = [IsAuthenticated]
    default_limit = 100

    search_fields = ('source_ip', 'chain_name', 'action_taken', 'request_path', 'domain', 'user_agent')
    sort_fields = ('timestamp', 'source_ip', 'chain_name', 'action_taken', 'status_code', 'request_method')

    def get_queryset(self):
        queryset = SecurityEvent.objects.all()

        action_taken = self.request.query_params.get('action_taken')
        if action_taken:
            queryset = queryset.filter(action_taken=action_taken)

        return queryset


class ProxySecuritySettingsView(APIView):
    """
    GET / PUT / PATCH the proxy security settings singleton
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(ProxySecuritySettingsSerializer(ProxySecuritySettings.load()).data)

    def put(self, request):
        return self._update(request, partial=False)

    def patch(self, request):
        return self._update(request, partial=True)

    def _update(self, request, partial):
        serializer = ProxySecuritySettingsSerializer(
            ProxySecuritySettings.load(), data=request.data, partial=partial
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
