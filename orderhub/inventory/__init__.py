"""Inventory: guarded stock movements for product variants."""
