"""FarmPass push notification lifecycle.

Packages:
    push/: server side (VAPID keys, subscription store, cleanup, Web Push sender)
    client/: browser-side lifecycle against an abstract platform
    dashboard/: FastAPI backend exposing the push REST surface
"""

__version__ = "0.1.0"
