"""Wishlists for signed-in users and guest sessions."""
