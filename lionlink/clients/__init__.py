from lionlink.clients.session import AccessToken, SessionManager, SessionState

__all__ = ["AccessToken", "SessionManager", "SessionState"]
