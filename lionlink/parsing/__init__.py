"""
Decoding of data pushed by the vendor cloud.

- ``telemetry``: dashboard widget payloads, the machine snapshot they fold
  into, change events and display-neutral derived views.
"""
