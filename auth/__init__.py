"""auth/ -- Authentication and session lifecycle for Pulse.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, core/, or notify/ at runtime; settings and the
mailer are injected by api/main.py. api/ imports from auth/, not the other
way around.
"""
