"""Shipping: Shiprocket API client and shipment lifecycle."""
