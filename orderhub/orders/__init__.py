"""Orders: data model, pricing, and the webhook-driven reconciler."""
