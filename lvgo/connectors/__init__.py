"""Host gateway adapters."""

from lvgo.connectors.connector import (
    ConnectionDirectory,
    Connector,
    GatewayConnector,
    voice_state_payload,
)

__all__ = ["ConnectionDirectory", "Connector", "GatewayConnector", "voice_state_payload"]
