"""Catalog: products, variants, collections and the Shiprocket catalog feed."""
