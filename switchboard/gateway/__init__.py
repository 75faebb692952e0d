"""Telephony gateway collaborator — AMI client and link keepalive."""

from .ami import AMIAuthError, AMIClient, AMIConnectionError, AMIError
from .keepalive import GatewayKeepalive, GatewayLinkState
from .models import AMIResponse
