"""
keyferry — carry secrets from the OS vault into containers.

Public API:
    keyferry.keychain      Secure Note Store over the platform vault
    keyferry.plugin        privileged helper protocol (client + server)
    keyferry.credentials   Credential Set codec
    keyferry.bridge        container secret bridge (sender + entrypoint)
"""

__version__ = "0.1.0"
