"""Battery report inventory runner.

Collects powercfg battery telemetry for the local machine and publishes it
into a WMI inventory class, one record per computer.
"""

__version__ = "1.0.0"
