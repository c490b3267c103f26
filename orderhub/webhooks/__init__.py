"""Shiprocket webhooks.

Inbound: checkout and shipment events are signature-verified, validated,
classified and applied to orders.  Outbound: catalog changes are pushed
to Shiprocket through an in-process retry queue.
"""
