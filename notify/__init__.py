"""notify/ -- Outbound user notifications (email) for Pulse.

Layer rule: notify/ imports only stdlib + third-party libraries.
auth/ services receive a Mailer by injection; they never import this package.
"""
