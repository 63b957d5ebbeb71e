"""
gost TUN bootstrap - brings up a client-side TUN tunnel through gost.

This package provides functionality to:
- Validate tunnel parameters from the environment
- Replace the default route with a host route to the tunnel server
- Render and launch a gost TUN configuration, directly or through a TLS relay
"""

__version__ = "1.0.0"
