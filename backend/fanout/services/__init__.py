"""
Notification services: facade (notifications), recipient resolution, fan-out ledger,
subscription registry, push transports and delivery.
"""
