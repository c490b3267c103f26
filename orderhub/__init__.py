"""orderhub: order management backend integrated with the Shiprocket checkout aggregator."""

__version__ = "0.4.0"
