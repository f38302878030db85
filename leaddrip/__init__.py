"""
LeadDrip — signal-driven lead discovery.

Entry point is leaddrip.pipeline.coordinator.run_pipeline(); clients are built
once by leaddrip.clients.build_services() and injected.
"""

__version__ = '0.1.0'
