# Overview: Extension instances for the JSON store, session storage and login throttling.

from .storage import JsonStore
from .session_backends import SessionRegistry
from .services.login_throttle_service import LoginThrottle

store = JsonStore()
sessions = SessionRegistry()
throttle = LoginThrottle()
