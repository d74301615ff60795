"""qontrol - fleet status, alerts and data-fabric views for Qumulo clusters."""

__version__ = "0.4.0"
